"""Action contract: typed metadata, credentials and their validators."""

from .credentials import (
    ApiKeyCredential,
    SmtpCredential,
    WalletCredential,
    validate_credential,
)
from .metadata import (
    METADATA_MODELS,
    ActionKind,
    BaseActionMetadata,
    EmailMetadata,
    GeminiMetadata,
    GmailMetadata,
    SolanaMetadata,
    TelegramMetadata,
    validate_metadata,
)
from .validation import ValidationResult, validate_fields

__all__ = [
    "ActionKind",
    "ApiKeyCredential",
    "BaseActionMetadata",
    "EmailMetadata",
    "GeminiMetadata",
    "GmailMetadata",
    "METADATA_MODELS",
    "SmtpCredential",
    "SolanaMetadata",
    "TelegramMetadata",
    "ValidationResult",
    "WalletCredential",
    "validate_credential",
    "validate_fields",
    "validate_metadata",
]
