"""Tests for metadata and credential validation."""

import pytest

from flowrelay.actions import (
    ActionKind,
    ApiKeyCredential,
    EmailMetadata,
    SmtpCredential,
    TelegramMetadata,
    WalletCredential,
    validate_credential,
    validate_metadata,
)
from flowrelay.persistence import Credential


def _credential(platform, keys):
    return Credential(id="c1", user_id="u1", platform=platform, keys=keys)


def test_email_metadata_reports_every_missing_field():
    result = validate_metadata(ActionKind.EMAIL, {"to": "a@example.com"})

    assert not result.valid
    assert result.missing_fields == ["from", "subject", "body"]


def test_email_metadata_uses_wire_aliases():
    raw = {
        "to": "a@example.com",
        "from": "me@example.com",
        "subject": "Hi",
        "body": "Hello",
        "credentialId": "c1",
    }
    result = validate_metadata("email", raw)

    assert result.valid
    assert isinstance(result.value, EmailMetadata)
    assert result.value.from_address == "me@example.com"
    assert result.value.credential_id == "c1"


def test_non_string_fields_are_missing():
    result = validate_metadata("telegram", {"chatId": 42, "message": "hi"})

    assert result.missing_fields == ["chatId"]


def test_non_object_metadata_reports_all_fields():
    result = validate_metadata("solana", "oops")

    assert result.missing_fields == ["to", "amount"]


def test_extra_metadata_fields_are_ignored():
    result = validate_metadata("telegram", {"chatId": "1", "message": "m", "x": 1})

    assert isinstance(result.value, TelegramMetadata)
    assert result.value.chat_id == "1"


def test_unknown_kind_raises():
    with pytest.raises(ValueError):
        validate_metadata("fax", {})


def test_missing_credential_is_invalid():
    result = validate_credential(None, "telegram", ApiKeyCredential)

    assert not result.valid
    assert result.missing_fields == ["credentialId"]


def test_credential_for_other_platform_is_invalid():
    credential = _credential("gemini", {"apiKey": "k"})

    result = validate_credential(credential, "telegram", ApiKeyCredential)

    assert result.missing_fields == ["platform"]


def test_empty_api_key_is_invalid():
    credential = _credential("telegram", {"apiKey": ""})

    result = validate_credential(credential, "telegram", ApiKeyCredential)

    assert result.missing_fields == ["apiKey"]


def test_smtp_credential_reads_pass_alias():
    credential = _credential("gmail", {"user": "me", "pass": "secret"})

    result = validate_credential(credential, "gmail", SmtpCredential)

    assert result.valid
    assert result.value.password == "secret"


def test_wallet_credential_requires_private_key():
    result = validate_credential(_credential("solana", {}), "solana", WalletCredential)

    assert result.missing_fields == ["privateKey"]
