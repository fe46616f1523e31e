"""Action executors and the registry the stage executor dispatches through."""

from __future__ import annotations

from typing import Dict, Optional

from ..actions import ActionKind
from ..config import ExecutorConfig
from .base import ActionExecutor, ExecutionResult
from .gemini import GeminiExecutor
from .resend import ResendEmailExecutor
from .smtp import SmtpEmailExecutor
from .solana import SolanaExecutor
from .telegram import TelegramExecutor

ExecutorRegistry = Dict[str, ActionExecutor]


def build_executor_registry(config: Optional[ExecutorConfig] = None) -> ExecutorRegistry:
    """Instantiate one executor per action kind, keyed by kind."""
    config = config or ExecutorConfig()
    common = {"timeout": config.timeout, "strict_templates": config.strict_templates}
    executors = [
        ResendEmailExecutor(api_url=config.resend_api_url, **common),
        SmtpEmailExecutor(
            smtp_host=config.smtp_host, smtp_port=config.smtp_port, **common
        ),
        TelegramExecutor(api_url=config.telegram_api_url, **common),
        GeminiExecutor(model_name=config.gemini_model, **common),
        SolanaExecutor(rpc_url=config.solana_rpc_url, **common),
    ]
    return {executor.kind.value: executor for executor in executors}


__all__ = [
    "ActionExecutor",
    "ActionKind",
    "ExecutionResult",
    "ExecutorRegistry",
    "GeminiExecutor",
    "ResendEmailExecutor",
    "SmtpEmailExecutor",
    "SolanaExecutor",
    "TelegramExecutor",
    "build_executor_registry",
]
