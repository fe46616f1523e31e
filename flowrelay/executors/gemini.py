"""Generative text through Gemini, fed back into the run context."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.google import GoogleProvider

from ..actions import ActionKind, ApiKeyCredential, GeminiMetadata
from ..constants import AI_RESPONSE_KEY
from .base import ActionExecutor, ExecutionResult

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"

ModelFactory = Callable[[str, str], Model]


def google_model(api_key: str, model_name: str) -> Model:
    """Build a Gemini model bound to the user's API key."""
    return GoogleModel(model_name, provider=GoogleProvider(api_key=api_key))


class GeminiExecutor(ActionExecutor):
    """Send the templated prompt to Gemini and expose the reply to later stages.

    The generated text is returned as a context update under
    ``AI_RESPONSE_KEY``; the stage executor merges it into the run metadata.
    """

    kind = ActionKind.GEMINI
    platform = "gemini"
    label = "Gemini"
    failure_prefix = "Gemini API error:"
    metadata_model = GeminiMetadata
    credential_model = ApiKeyCredential
    mutates_context = True

    def __init__(
        self,
        model_name: str = DEFAULT_GEMINI_MODEL,
        model_factory: Optional[ModelFactory] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.model_name = model_name
        self._model_factory = model_factory or google_model

    async def execute(
        self,
        secret: ApiKeyCredential,
        metadata: GeminiMetadata,
        context: Dict[str, Any],
    ) -> ExecutionResult:
        prompt = self.render("message", metadata.message, context)

        agent = Agent(self._model_factory(secret.api_key, self.model_name))
        result = await agent.run(
            prompt,
            model_settings={
                "timeout": self.timeout,
                "google_thinking_config": {"thinking_budget": 0},
            },
        )
        text = result.output
        logger.info(f"Gemini response received ({len(text)} chars)")
        return ExecutionResult.ok({AI_RESPONSE_KEY: text})
