"""flowrelay: durable, ordered execution of workflow action chains."""

from .contracts import StageMessage
from .executors import ActionExecutor, ExecutionResult, build_executor_registry
from .persistence import RunStatus, WorkflowRepository, get_repository
from .relay import OutboxRelay
from .templating import interpolate
from .transports import BaseTransport, get_transport
from .worker import StageExecutor

__version__ = "0.1.0"
__all__ = [
    "ActionExecutor",
    "BaseTransport",
    "ExecutionResult",
    "OutboxRelay",
    "RunStatus",
    "StageExecutor",
    "StageMessage",
    "WorkflowRepository",
    "build_executor_registry",
    "get_repository",
    "get_transport",
    "interpolate",
]
