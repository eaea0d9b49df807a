"""Subject and body templates for resume emails.

``EMAIL_SUBJECT``, ``EMAIL_TEXT`` and ``EMAIL_HTML`` override the defaults
below. Overrides are used verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Optional

_FOOTER = "This is an automated email. Please do not reply directly to this message."

_STYLE = """\
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .button { display: inline-block; padding: 12px 24px; background-color: #0d47a1; color: white; text-decoration: none; border-radius: 4px; margin: 20px 0; }
    .footer { margin-top: 30px; padding-top: 20px; border-top: 1px solid #eee; font-size: 12px; color: #666; }
    .link { word-break: break-all; color: #0d47a1; }"""

_HTML_PAGE = """\
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>
{style}
  </style>
</head>
<body>
  <div class="container">
    <p>Hello,</p>
{paragraphs}
    <p>If you have any questions, please don't hesitate to reach out.</p>
    <p>Best regards,<br><strong>{sender}</strong></p>
    <div class="footer">
      <p>{footer}</p>
    </div>
  </div>
</body>
</html>"""


@dataclass(frozen=True)
class EmailContent:
    subject: str
    text: str
    html: str


def _format_hours(hours: float) -> str:
    return f"{hours:g}"


def attachment_content(
    sender_name: str,
    subject: str,
    text_override: Optional[str] = None,
    html_override: Optional[str] = None,
) -> EmailContent:
    text = text_override or (
        "Hello,\n\n"
        "Thank you for your interest in my work. Please find my resume attached to this email.\n\n"
        "If you have any questions, please don't hesitate to reach out.\n\n"
        f"Best regards,\n{sender_name}"
    )
    html = html_override or _HTML_PAGE.format(
        style=_STYLE,
        paragraphs="    <p>Thank you for your interest in my work. Please find my resume attached to this email.</p>",
        sender=escape(sender_name),
        footer=_FOOTER,
    )
    return EmailContent(subject, text, html)


def link_content(
    sender_name: str,
    subject: str,
    download_url: str,
    expiry_hours: float,
    text_override: Optional[str] = None,
    html_override: Optional[str] = None,
) -> EmailContent:
    hours = _format_hours(expiry_hours)
    text = text_override or (
        "Hello,\n\n"
        "Thank you for your interest in my work.\n\n"
        "You can download my resume using this secure link:\n"
        f"{download_url}\n\n"
        f"This link will expire in {hours} hours.\n\n"
        "If you have any questions, please don't hesitate to reach out.\n\n"
        f"Best regards,\n{sender_name}"
    )
    url = escape(download_url, quote=True)
    paragraphs = "\n".join([
        "    <p>Thank you for your interest in my work.</p>",
        "    <p>You can download my resume using the secure link below:</p>",
        f'    <p style="text-align: center;"><a href="{url}" class="button">Download Resume</a></p>',
        f'    <p style="font-size: 12px; color: #666;">Or copy this link: <span class="link">{url}</span></p>',
        f'    <p style="font-size: 12px; color: #666;">This link will expire in {hours} hours.</p>',
    ])
    html = html_override or _HTML_PAGE.format(
        style=_STYLE, paragraphs=paragraphs, sender=escape(sender_name), footer=_FOOTER,
    )
    return EmailContent(subject, text, html)
