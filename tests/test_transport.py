import asyncio
import base64
from email.message import EmailMessage

import aiosmtplib
import pytest

from resume_mailer import transport as transport_module
from resume_mailer.models import Protocol, TransportConfig
from resume_mailer.oauth2 import GoogleTokenProvider
from resume_mailer.transport import SessionFactory, SmtpSession


class DummySMTP:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.login_credentials = None
        self.is_connected = False
        self.commands = []
        self.sent = []
        self.quit_calls = 0
        self.close_calls = 0
        self.noop_code = 250
        self.auth_replies = [aiosmtplib.SMTPResponse(235, "Accepted")]
        self.quit_error = None

    async def connect(self):
        self.is_connected = True

    async def login(self, user, password):
        self.login_credentials = (user, password)

    async def execute_command(self, *args):
        self.commands.append(args)
        return self.auth_replies.pop(0)

    async def noop(self):
        return self.noop_code, "OK"

    async def send_message(self, msg, sender=None):
        self.sent.append((msg, sender))

    async def quit(self):
        self.quit_calls += 1
        if self.quit_error is not None:
            raise self.quit_error
        self.is_connected = False

    def close(self):
        self.close_calls += 1
        self.is_connected = False


class FakeTokenProvider:
    def __init__(self, token="ya29.token"):
        self.token = token
        self.invalidated = False

    async def get_access_token(self):
        return self.token

    def invalidate(self):
        self.invalidated = True


@pytest.fixture(autouse=True)
def patch_aiosmtplib(monkeypatch):
    created = []

    def factory(**kwargs):
        smtp = DummySMTP(**kwargs)
        created.append(smtp)
        return smtp

    monkeypatch.setattr("resume_mailer.transport.aiosmtplib.SMTP", factory)
    return created


def smtp_config(port=587, use_tls=True, validate_certs=False):
    return TransportConfig(
        protocol=Protocol.SMTP,
        host="smtp.example.com",
        port=port,
        user="me@example.com",
        password="secret",
        sender_address="me@example.com",
        sender_name="Jane",
        use_tls=use_tls,
        validate_certs=validate_certs,
    )


def oauth_config():
    return TransportConfig(
        protocol=Protocol.OAUTH2,
        host="smtp.gmail.com",
        port=465,
        user="me@gmail.com",
        client_id="cid",
        client_secret="csecret",
        refresh_token="rtoken",
        sender_address="me@gmail.com",
        sender_name="Jane",
    )


@pytest.mark.parametrize("port,use_tls,expected", [
    (465, True, (True, False)),
    (587, True, (False, True)),
    (25, False, (False, False)),
])
def test_tls_mode_follows_port(patch_aiosmtplib, port, use_tls, expected):
    SmtpSession(smtp_config(port=port, use_tls=use_tls))._client()
    kwargs = patch_aiosmtplib[0].kwargs
    assert (kwargs["use_tls"], kwargs["start_tls"]) == expected
    assert kwargs["hostname"] == "smtp.example.com"


@pytest.mark.asyncio
async def test_password_session_logs_in_sends_and_quits(patch_aiosmtplib):
    msg = EmailMessage()
    async with SmtpSession(smtp_config()) as session:
        await session.send(msg)

    smtp = patch_aiosmtplib[0]
    assert smtp.login_credentials == ("me@example.com", "secret")
    assert smtp.sent == [(msg, "me@example.com")]
    assert smtp.quit_calls == 1
    assert smtp.kwargs["validate_certs"] is False


@pytest.mark.asyncio
async def test_oauth2_session_uses_xoauth2(patch_aiosmtplib):
    provider = FakeTokenProvider()
    async with SmtpSession(oauth_config(), provider):
        pass

    smtp = patch_aiosmtplib[0]
    assert smtp.login_credentials is None
    verb, mechanism, payload = smtp.commands[0]
    assert (verb, mechanism) == (b"AUTH", b"XOAUTH2")
    assert base64.b64decode(payload) == b"user=me@gmail.com\x01auth=Bearer ya29.token\x01\x01"
    assert smtp.kwargs["use_tls"] is True


@pytest.mark.asyncio
async def test_xoauth2_rejection_invalidates_token(patch_aiosmtplib, monkeypatch):
    provider = FakeTokenProvider()

    real_factory = transport_module.aiosmtplib.SMTP

    def failing_factory(**kwargs):
        smtp = real_factory(**kwargs)
        smtp.auth_replies = [
            aiosmtplib.SMTPResponse(334, "eyJzdGF0dXMiOiI0MDAifQ=="),
            aiosmtplib.SMTPResponse(535, "Username and Password not accepted"),
        ]
        return smtp

    monkeypatch.setattr("resume_mailer.transport.aiosmtplib.SMTP", failing_factory)

    with pytest.raises(aiosmtplib.SMTPAuthenticationError) as excinfo:
        async with SmtpSession(oauth_config(), provider):
            pass

    assert excinfo.value.code == 535
    assert provider.invalidated is True
    smtp = patch_aiosmtplib[0]
    assert smtp.commands[1] == (b"",)
    assert smtp.quit_calls == 1


@pytest.mark.asyncio
async def test_failed_noop_closes_session(patch_aiosmtplib, monkeypatch):
    real_factory = transport_module.aiosmtplib.SMTP

    def unhealthy_factory(**kwargs):
        smtp = real_factory(**kwargs)
        smtp.noop_code = 421
        return smtp

    monkeypatch.setattr("resume_mailer.transport.aiosmtplib.SMTP", unhealthy_factory)

    with pytest.raises(aiosmtplib.SMTPResponseException):
        async with SmtpSession(smtp_config()):
            pass
    assert patch_aiosmtplib[0].quit_calls == 1


@pytest.mark.asyncio
async def test_close_drops_socket_when_quit_fails(patch_aiosmtplib):
    session = SmtpSession(smtp_config())
    await session.open()
    smtp = patch_aiosmtplib[0]
    smtp.quit_error = aiosmtplib.SMTPServerDisconnected("gone")

    await session.close()
    await session.close()

    assert smtp.quit_calls == 1
    assert smtp.close_calls == 1


@pytest.mark.asyncio
async def test_send_without_open_raises():
    session = SmtpSession(smtp_config())
    with pytest.raises(aiosmtplib.SMTPServerDisconnected):
        await session.send(EmailMessage())


@pytest.mark.asyncio
async def test_open_times_out(patch_aiosmtplib, monkeypatch):
    monkeypatch.setattr(transport_module, "CONNECT_DEADLINE", 0.01)
    real_factory = transport_module.aiosmtplib.SMTP

    def hanging_factory(**kwargs):
        smtp = real_factory(**kwargs)

        async def connect():
            await asyncio.sleep(1)

        smtp.connect = connect
        return smtp

    monkeypatch.setattr("resume_mailer.transport.aiosmtplib.SMTP", hanging_factory)

    with pytest.raises(asyncio.TimeoutError):
        async with SmtpSession(smtp_config()):
            pass


def test_session_factory_shares_token_provider_per_client():
    factory = SessionFactory()
    first = factory(oauth_config())
    second = factory(oauth_config())

    assert isinstance(first.token_provider, GoogleTokenProvider)
    assert first.token_provider is second.token_provider
    assert factory(smtp_config()).token_provider is None
