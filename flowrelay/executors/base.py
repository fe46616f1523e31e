"""Uniform validate -> execute -> report contract for action executors."""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Any, ClassVar, Dict, Optional, Type

from pydantic import BaseModel, Field

from ..actions import (
    ActionKind,
    BaseActionMetadata,
    ValidationResult,
    validate_credential,
    validate_fields,
)
from ..constants import DEFAULT_EXECUTOR_TIMEOUT
from ..exceptions import TemplateError
from ..persistence.models import Credential
from ..templating import interpolate

logger = logging.getLogger(__name__)


class ExecutionResult(BaseModel):
    """Outcome of one stage attempt."""

    success: bool
    error: Optional[str] = None
    context_updates: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, context_updates: Optional[Dict[str, Any]] = None) -> "ExecutionResult":
        return cls(success=True, context_updates=context_updates or {})

    @classmethod
    def failed(cls, reason: str) -> "ExecutionResult":
        return cls(success=False, error=reason)


class ActionExecutor(abc.ABC):
    """Performs the real-world side effect of one action kind.

    Subclasses describe their metadata and credential shapes through class
    attributes and implement :meth:`execute`. Callers go through :meth:`run`,
    which never raises: every problem is reported as a failed
    :class:`ExecutionResult` whose ``error`` is suitable for the run's
    error message.
    """

    kind: ClassVar[ActionKind]
    platform: ClassVar[str]
    label: ClassVar[str]
    failure_prefix: ClassVar[str]
    metadata_model: ClassVar[Type[BaseActionMetadata]]
    credential_model: ClassVar[Type[BaseModel]]
    # Only executors that feed later stages may write to the run context.
    mutates_context: ClassVar[bool] = False

    def __init__(
        self, timeout: float = DEFAULT_EXECUTOR_TIMEOUT, strict_templates: bool = False
    ) -> None:
        self.timeout = timeout
        self.strict_templates = strict_templates

    def validate_metadata(self, raw: Any) -> ValidationResult:
        return validate_fields(self.metadata_model, raw)

    def validate_credential(self, credential: Credential | None) -> ValidationResult:
        return validate_credential(credential, self.platform, self.credential_model)

    def render(self, field: str, template: str, context: Any) -> str:
        """Interpolate one templated metadata field against the run context."""
        try:
            return interpolate(template, context, strict=self.strict_templates)
        except TemplateError as exc:
            raise TemplateError(f"Invalid template in field '{field}': {exc}") from exc

    @abc.abstractmethod
    async def execute(
        self, secret: Any, metadata: Any, context: Dict[str, Any]
    ) -> ExecutionResult:
        """Resolve templates and call the downstream capability once."""
        raise NotImplementedError

    async def run(
        self,
        credential: Credential | None,
        raw_metadata: Any,
        context: Dict[str, Any],
    ) -> ExecutionResult:
        secret = self.validate_credential(credential)
        if not secret.valid:
            return ExecutionResult.failed(
                f"No {self.platform} credentials found for the user"
            )

        metadata = self.validate_metadata(raw_metadata)
        if not metadata.valid:
            return ExecutionResult.failed(
                f"{self.label} action metadata missing required fields: "
                f"{', '.join(metadata.missing_fields)}"
            )

        try:
            return await asyncio.wait_for(
                self.execute(secret.value, metadata.value, context),
                timeout=self.timeout,
            )
        except TemplateError as exc:
            return ExecutionResult.failed(str(exc))
        except asyncio.TimeoutError:
            return ExecutionResult.failed(
                f"{self.failure_prefix} timed out after {self.timeout:g}s"
            )
        except Exception as exc:
            logger.warning(f"{self.label} action failed: {exc!r}")
            return ExecutionResult.failed(f"{self.failure_prefix} {exc}")
