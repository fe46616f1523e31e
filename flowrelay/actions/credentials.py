"""Typed credential key bundles."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .validation import ValidationResult, validate_fields

if TYPE_CHECKING:
    from ..persistence.models import Credential

logger = logging.getLogger(__name__)

SecretT = TypeVar("SecretT", bound=BaseModel)


class ApiKeyCredential(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(alias="apiKey")


class SmtpCredential(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: str
    password: str = Field(alias="pass")


class WalletCredential(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    private_key: str = Field(alias="privateKey")


def validate_credential(
    credential: "Credential | None", platform: str, model: Type[SecretT]
) -> ValidationResult[SecretT]:
    """Check that ``credential`` is a usable ``platform`` key bundle.

    A missing credential, one registered for another platform, or a key bundle
    lacking a required non-empty string are all invalid.
    """
    if credential is None:
        logger.warning(f"No {platform} credentials found for the user")
        return ValidationResult[model](missing_fields=["credentialId"])
    if credential.platform != platform:
        logger.warning(
            f"Credential {credential.id} belongs to {credential.platform}, expected {platform}"
        )
        return ValidationResult[model](missing_fields=["platform"])
    return validate_fields(model, credential.keys, allow_empty=False)
