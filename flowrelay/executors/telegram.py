"""Chat message delivered through the Telegram Bot API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..actions import ActionKind, ApiKeyCredential, TelegramMetadata
from ._http import describe_error, open_client
from .base import ActionExecutor, ExecutionResult

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramExecutor(ActionExecutor):
    kind = ActionKind.TELEGRAM
    platform = "telegram"
    label = "Telegram"
    failure_prefix = "Failed to send Telegram message:"
    metadata_model = TelegramMetadata
    credential_model = ApiKeyCredential

    def __init__(
        self,
        api_url: str = TELEGRAM_API_URL,
        client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.api_url = api_url.rstrip("/")
        self._client = client

    async def execute(
        self,
        secret: ApiKeyCredential,
        metadata: TelegramMetadata,
        context: Dict[str, Any],
    ) -> ExecutionResult:
        chat_id = self.render("chatId", metadata.chat_id, context)
        text = self.render("message", metadata.message, context)

        # The bot token is part of the URL; keep it out of log lines.
        async with open_client(self._client, self.timeout) as client:
            response = await client.post(
                f"{self.api_url}/bot{secret.api_key}/sendMessage",
                json={"chat_id": chat_id, "text": text},
            )
        if response.is_error:
            return ExecutionResult.failed(
                f"{self.failure_prefix} {describe_error(response)}"
            )

        logger.info(f"Telegram message sent to chat {chat_id}")
        return ExecutionResult.ok()
