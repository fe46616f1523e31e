"""Email delivered over SMTP with the user's mailbox login."""

from __future__ import annotations

import logging
from email.message import EmailMessage
from typing import Any, Dict

import aiosmtplib

from ..actions import ActionKind, GmailMetadata, SmtpCredential
from .base import ActionExecutor, ExecutionResult
from .resend import render_email_html

logger = logging.getLogger(__name__)


class SmtpEmailExecutor(ActionExecutor):
    kind = ActionKind.GMAIL
    platform = "gmail"
    label = "Email"
    failure_prefix = "Failed to send email:"
    metadata_model = GmailMetadata
    credential_model = SmtpCredential

    def __init__(
        self, smtp_host: str = "smtp.gmail.com", smtp_port: int = 465, **kwargs: Any
    ) -> None:
        super().__init__(**kwargs)
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port

    def build_message(self, to: str, sender: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        message.add_alternative(render_email_html(subject, body), subtype="html")
        return message

    async def execute(
        self,
        secret: SmtpCredential,
        metadata: GmailMetadata,
        context: Dict[str, Any],
    ) -> ExecutionResult:
        to = self.render("to", metadata.to, context)
        sender = self.render("from", metadata.from_address, context)
        subject = self.render("subject", metadata.subject, context)
        body = self.render("body", metadata.body, context)

        implicit_tls = self.smtp_port == 465
        await aiosmtplib.send(
            self.build_message(to, sender, subject, body),
            hostname=self.smtp_host,
            port=self.smtp_port,
            username=secret.user,
            password=secret.password,
            use_tls=implicit_tls,
            start_tls=False if implicit_tls else None,
            timeout=self.timeout,
        )
        logger.info(f"Email sent to {to} via {self.smtp_host}")
        return ExecutionResult.ok()
