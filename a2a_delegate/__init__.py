"""A2A delegation: discover a remote agent, send it a task, collect the answer."""

from .client import A2AClient, RetryConfig
from .dispatch import (
    DelegationRequest,
    Dispatcher,
    DispatchState,
    delegate,
    delegate_sync,
    stream_delegation,
)
from .errors import (
    AuthorizationError,
    ConfigurationError,
    DelegationError,
    ProtocolError,
    RemoteAgentError,
    ResolutionError,
    TransportError,
)
from .types import (
    AgentCapabilities,
    AgentCard,
    AgentSkill,
    Artifact,
    DelegationOutcome,
    ErrorCode,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    Part,
    Task,
    TaskState,
    TaskStatus,
)

__all__ = [
    "A2AClient",
    "AgentCapabilities",
    "AgentCard",
    "AgentSkill",
    "Artifact",
    "AuthorizationError",
    "ConfigurationError",
    "DelegationError",
    "DelegationOutcome",
    "DelegationRequest",
    "DispatchState",
    "Dispatcher",
    "ErrorCode",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "Message",
    "Part",
    "ProtocolError",
    "RemoteAgentError",
    "ResolutionError",
    "RetryConfig",
    "Task",
    "TaskState",
    "TaskStatus",
    "TransportError",
    "delegate",
    "delegate_sync",
    "stream_delegation",
]
