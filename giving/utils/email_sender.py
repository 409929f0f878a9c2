"""
Outbound donor email over SendGrid, SES or SMTP.

Configure via env:
- EMAIL_PROVIDER: "sendgrid" | "ses" | "smtp" (default: "sendgrid" if an API key
  is set, else "smtp" if SMTP_SERVER is set, else "ses" if AWS creds are set)
- For SendGrid: SENDGRID_API_KEY
- For SES: AWS_REGION, AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY (or default creds)
- For SMTP: SMTP_SERVER, SMTP_PORT (587), SMTP_USERNAME, SMTP_PASSWORD
- FROM_EMAIL, FROM_NAME: sender used when the caller doesn't pass one

Every transport returns (provider, message_id) on success and
(None, error) on failure; nothing here raises.
"""

from __future__ import annotations
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, To

DEFAULT_FROM_EMAIL = os.getenv("FROM_EMAIL", "no-reply@example.com")
DEFAULT_FROM_NAME = os.getenv("FROM_NAME", "Church Donations Team")

Result = Tuple[Optional[str], Optional[str]]


@dataclass(frozen=True)
class Outgoing:
    to_email: str
    subject: str
    text: str
    html: str
    from_email: str
    from_name: str

    @property
    def sender(self) -> str:
        return formataddr((self.from_name, self.from_email))


def _sendgrid(msg: Outgoing) -> Result:
    api_key = os.getenv("SENDGRID_API_KEY", "").strip()
    if not api_key:
        return None, "SENDGRID_API_KEY not set"
    mail = Mail(
        from_email=Email(msg.from_email, msg.from_name),
        to_emails=To(msg.to_email),
        subject=msg.subject,
        plain_text_content=Content("text/plain", msg.text),
        html_content=Content("text/html", msg.html),
    )
    try:
        response = SendGridAPIClient(api_key).send(mail)
    except Exception as e:  # python_http_client raises per status code
        return None, str(e)
    headers = response.headers or {}
    return "sendgrid", headers.get("X-Message-Id") or str(response.status_code)


def _ses(msg: Outgoing) -> Result:
    try:
        client = boto3.client("ses", region_name=os.getenv("AWS_REGION", "us-east-1"))
        response = client.send_email(
            Source=msg.sender,
            Destination={"ToAddresses": [msg.to_email]},
            Message={
                "Subject": {"Data": msg.subject, "Charset": "UTF-8"},
                "Body": {
                    "Text": {"Data": msg.text, "Charset": "UTF-8"},
                    "Html": {"Data": msg.html, "Charset": "UTF-8"},
                },
            },
        )
    except ClientError as e:
        return None, e.response.get("Error", {}).get("Message", str(e))
    except BotoCoreError as e:
        return None, str(e)
    return "ses", response.get("MessageId") or "unknown"


def _smtp(msg: Outgoing) -> Result:
    server = os.getenv("SMTP_SERVER", "").strip()
    if not server:
        return None, "SMTP_SERVER not set"

    mime = EmailMessage()
    mime["From"] = msg.sender
    mime["To"] = msg.to_email
    mime["Subject"] = msg.subject
    mime.set_content(msg.text)
    mime.add_alternative(msg.html, subtype="html")

    try:
        port = int(os.getenv("SMTP_PORT", "587"))
        with smtplib.SMTP(server, port, timeout=15) as smtp:
            smtp.starttls()
            username = os.getenv("SMTP_USERNAME")
            if username:
                smtp.login(username, os.getenv("SMTP_PASSWORD", ""))
            smtp.send_message(mime)
    except (smtplib.SMTPException, OSError, ValueError) as e:
        return None, str(e)
    return "smtp", mime.get("Message-Id") or "sent"


TRANSPORTS = {"sendgrid": _sendgrid, "ses": _ses, "smtp": _smtp}


def detect_provider() -> str:
    provider = os.getenv("EMAIL_PROVIDER", "").strip().lower()
    if provider:
        return provider
    if os.getenv("SENDGRID_API_KEY"):
        return "sendgrid"
    if os.getenv("SMTP_SERVER"):
        return "smtp"
    if os.getenv("AWS_REGION") or os.getenv("AWS_ACCESS_KEY_ID"):
        return "ses"
    return ""


def send_email(
    *,
    to_email: str,
    subject: str,
    body_text: str,
    body_html: Optional[str] = None,
    from_email: Optional[str] = None,
    from_name: Optional[str] = None,
) -> Result:
    provider = detect_provider()
    if not provider:
        return None, "EMAIL_PROVIDER not set and no SENDGRID_API_KEY, SMTP_SERVER or AWS creds"
    transport = TRANSPORTS.get(provider)
    if transport is None:
        return None, f"Unknown EMAIL_PROVIDER: {provider}"
    return transport(
        Outgoing(
            to_email=to_email,
            subject=subject,
            text=body_text,
            html=body_html or f"<pre>{body_text}</pre>",
            from_email=from_email or DEFAULT_FROM_EMAIL,
            from_name=from_name or DEFAULT_FROM_NAME,
        )
    )
