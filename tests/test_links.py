import base64
from urllib.parse import parse_qs, urlparse

import botocore.exceptions
import pytest

from resume_mailer.config import ServiceConfig
from resume_mailer.errors import ConfigurationMissing, ResourceUnavailable
from resume_mailer.links import DownloadLinkSigner, sign


def query(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


@pytest.mark.asyncio
async def test_signed_link_carries_expiry_and_signature():
    signer = DownloadLinkSigner(secret="s3cret", base_url="https://site.example/", expiry_seconds=3600, clock=lambda: 1000)

    url = await signer.generate("visitor@example.com")

    assert signer.mode == "signed"
    assert url.startswith("https://site.example/api/download-resume?")
    params = query(url)
    assert params["email"] == "visitor@example.com"
    assert params["expires"] == "4600"
    assert params["sig"] == sign("s3cret", "visitor@example.com", 4600)


def test_verify_accepts_valid_and_rejects_tampered_links():
    signer = DownloadLinkSigner(secret="s3cret", clock=lambda: 1000)
    params = query(signer.signed_url("visitor@example.com"))

    assert signer.verify(params["email"], params["expires"], params["sig"])
    assert not signer.verify("other@example.com", params["expires"], params["sig"])
    assert not signer.verify(params["email"], int(params["expires"]) + 1, params["sig"])
    assert not signer.verify(params["email"], "soon", params["sig"])
    assert not signer.verify(params["email"], params["expires"], params["sig"], now=10**9)


def test_verify_without_secret_is_always_false():
    signer = DownloadLinkSigner()
    assert not signer.verify("a@b.co", 10**12, "anything")


def test_signed_link_default_base_url():
    signer = DownloadLinkSigner(secret="x", clock=lambda: 0)
    assert signer.signed_url("a@b.co").startswith("https://your-domain.com/api/download-resume?")


@pytest.mark.asyncio
async def test_token_link_outside_production():
    signer = DownloadLinkSigner(clock=lambda: 12.5)

    url = await signer.generate("visitor@example.com")

    assert signer.mode == "token"
    assert url.startswith("http://localhost:5000/api/download-resume?token=")
    token = query(url)["token"]
    assert base64.b64decode(token) == b"visitor@example.com:12500"


@pytest.mark.asyncio
async def test_token_link_refused_in_production():
    signer = DownloadLinkSigner(production=True)
    with pytest.raises(ConfigurationMissing) as excinfo:
        await signer.generate("visitor@example.com")
    assert excinfo.value.missing == ["DOWNLOAD_SECRET"]


class DummyS3Client:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def generate_presigned_url(self, operation, Params, ExpiresIn):
        self.calls.append((operation, Params, ExpiresIn))
        if self.error is not None:
            raise self.error
        return f"https://{Params['Bucket']}.s3.amazonaws.com/{Params['Key']}?X-Amz-Signature=abc"


class DummySession:
    def __init__(self, client, **kwargs):
        self.kwargs = kwargs
        self._client = client

    def client(self, name):
        assert name == "s3"
        return self._client


def s3_signer(**kwargs):
    return DownloadLinkSigner(
        secret="ignored-when-s3-configured",
        expiry_seconds=600,
        aws_access_key_id="AKIA",
        aws_secret_access_key="secret",
        aws_region="eu-west-1",
        aws_bucket="resumes",
        aws_key="cv.pdf",
        **kwargs,
    )


@pytest.mark.asyncio
async def test_presigned_url_when_storage_configured(monkeypatch):
    client = DummyS3Client()
    sessions = []

    def session_factory(**kwargs):
        session = DummySession(client, **kwargs)
        sessions.append(session)
        return session

    monkeypatch.setattr("resume_mailer.links.aioboto3.Session", session_factory)
    signer = s3_signer()

    url = await signer.generate("visitor@example.com")

    assert signer.mode == "s3"
    assert url == "https://resumes.s3.amazonaws.com/cv.pdf?X-Amz-Signature=abc"
    assert client.calls == [("get_object", {"Bucket": "resumes", "Key": "cv.pdf"}, 600)]
    assert sessions[0].kwargs["region_name"] == "eu-west-1"


@pytest.mark.asyncio
async def test_presign_failure_is_resource_unavailable(monkeypatch):
    client = DummyS3Client(error=botocore.exceptions.NoCredentialsError())
    monkeypatch.setattr("resume_mailer.links.aioboto3.Session", lambda **kwargs: DummySession(client, **kwargs))

    with pytest.raises(ResourceUnavailable):
        await s3_signer().generate("visitor@example.com")


def test_from_config():
    config = ServiceConfig(download_secret="k", download_base_url="https://x.example", link_expiry_seconds=7200)
    signer = DownloadLinkSigner.from_config(config)
    assert signer.mode == "signed"
    assert signer.expiry_hours == 2
    assert signer.production is False
