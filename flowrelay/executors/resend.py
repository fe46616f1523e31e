"""Email delivered through the Resend transactional API."""

from __future__ import annotations

import html
import logging
from typing import Any, Dict, Optional

import httpx

from ..actions import ActionKind, ApiKeyCredential, EmailMetadata
from ._http import describe_error, open_client
from .base import ActionExecutor, ExecutionResult

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

EMAIL_HTML_TEMPLATE = """<html>
  <body>
    <div style="font-family: Arial, sans-serif; line-height: 1.5; color: #333;">
      <h2>{subject}</h2>
      <p>{body}</p>
      <footer style="margin-top: 20px; font-size: 12px; color: #888;">
        <p>Thank you,</p>
        <p>The Team</p>
      </footer>
    </div>
  </body>
</html>"""


def render_email_html(subject: str, body: str) -> str:
    """Wrap a plain-text body in the standard email layout."""
    return EMAIL_HTML_TEMPLATE.format(
        subject=html.escape(subject), body=html.escape(body)
    )


class ResendEmailExecutor(ActionExecutor):
    kind = ActionKind.EMAIL
    platform = "email"
    label = "Email"
    failure_prefix = "Failed to send email:"
    metadata_model = EmailMetadata
    credential_model = ApiKeyCredential

    def __init__(
        self,
        api_url: str = RESEND_API_URL,
        client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.api_url = api_url
        self._client = client

    async def execute(
        self,
        secret: ApiKeyCredential,
        metadata: EmailMetadata,
        context: Dict[str, Any],
    ) -> ExecutionResult:
        to = self.render("to", metadata.to, context)
        sender = self.render("from", metadata.from_address, context)
        subject = self.render("subject", metadata.subject, context)
        body = self.render("body", metadata.body, context)

        async with open_client(self._client, self.timeout) as client:
            response = await client.post(
                self.api_url,
                json={
                    "from": sender,
                    "to": [to],
                    "subject": subject,
                    "html": render_email_html(subject, body),
                },
                headers={"Authorization": f"Bearer {secret.api_key}"},
            )
        if response.is_error:
            return ExecutionResult.failed(
                f"{self.failure_prefix} {describe_error(response)}"
            )

        logger.info(f"Email sent to {to}")
        return ExecutionResult.ok()
