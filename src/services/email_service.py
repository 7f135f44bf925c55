"""Outbound email through Amazon SES."""

from __future__ import annotations

import html

import boto3
from botocore.config import Config

from models.jobs import EmailResult
from utils.logging_config import get_logger

logger = get_logger(__name__)


class SesEmailer:
    """Send plain-text + HTML emails; failures come back as ``EmailResult``."""

    def __init__(self, sender: str, region: str = "eu-west-2") -> None:
        self.sender = sender
        self.client = boto3.client(
            "ses",
            region_name=region,
            config=Config(read_timeout=5, connect_timeout=2, retries={"max_attempts": 2}),
        )

    def send(self, to: str, subject: str, text: str, html: str) -> EmailResult:
        try:
            self.client.send_email(
                Source=self.sender,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {
                        "Text": {"Data": text, "Charset": "UTF-8"},
                        "Html": {"Data": html, "Charset": "UTF-8"},
                    },
                },
            )
        except Exception as exc:
            logger.warning("Email send failed", extra={"error": str(exc)})
            return EmailResult(success=False, error=str(exc))
        return EmailResult(success=True)


def text_to_html(text: str) -> str:
    """Escape each line and wrap it in a paragraph for the HTML part."""
    paragraphs = "".join(f"<p>{html.escape(line) or '&nbsp;'}</p>" for line in text.split("\n"))
    return f'<div style="font-family: sans-serif; line-height: 1.6;">{paragraphs}</div>'
