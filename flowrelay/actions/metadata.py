"""Typed metadata variants, one per action kind."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from .validation import ValidationResult, validate_fields


class ActionKind(str, Enum):
    EMAIL = "email"
    GMAIL = "gmail"
    TELEGRAM = "telegram"
    GEMINI = "gemini"
    SOLANA = "solana"


class BaseActionMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    credential_id: Optional[str] = Field(default=None, alias="credentialId")


class EmailMetadata(BaseActionMetadata):
    """Email sent through the transactional email API."""

    to: str
    from_address: str = Field(alias="from")
    subject: str
    body: str


class GmailMetadata(BaseActionMetadata):
    """Email sent over SMTP with the user's mailbox credentials."""

    to: str
    from_address: str = Field(alias="from")
    subject: str
    body: str


class TelegramMetadata(BaseActionMetadata):
    chat_id: str = Field(alias="chatId")
    message: str


class GeminiMetadata(BaseActionMetadata):
    message: str


class SolanaMetadata(BaseActionMetadata):
    to: str
    amount: str


METADATA_MODELS: Dict[ActionKind, Type[BaseActionMetadata]] = {
    ActionKind.EMAIL: EmailMetadata,
    ActionKind.GMAIL: GmailMetadata,
    ActionKind.TELEGRAM: TelegramMetadata,
    ActionKind.GEMINI: GeminiMetadata,
    ActionKind.SOLANA: SolanaMetadata,
}


def validate_metadata(kind: ActionKind | str, raw: Any) -> ValidationResult:
    """Validate ``raw`` against the metadata variant selected by ``kind``."""
    model = METADATA_MODELS[ActionKind(kind)]
    return validate_fields(model, raw)
