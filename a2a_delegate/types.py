"""A2A Protocol Type Definitions.

Implements the A2A (Agent-to-Agent) protocol types used on both sides of a
delegation: the agent card a provider publishes, the messages and tasks
exchanged over JSON-RPC, and the outcome the coordinator surfaces upward.

Every ``from_dict`` ignores fields it does not know about, so newer peers
can add fields without breaking older ones.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def new_id() -> str:
    return uuid.uuid4().hex


class TaskState(str, Enum):
    """Task lifecycle state."""
    SUBMITTED = "submitted"
    WORKING = "working"
    INPUT_REQUIRED = "input-required"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"
    REJECTED = "rejected"
    AUTH_REQUIRED = "auth-required"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "TaskState":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in (
            TaskState.COMPLETED,
            TaskState.CANCELED,
            TaskState.FAILED,
            TaskState.REJECTED,
        )


@dataclass(frozen=True)
class Part:
    """A part of a message or artifact.

    Only ``text`` parts are interpreted. Any other kind (``data``, ``file``,
    or something newer) is carried opaquely in ``extra`` and written back
    unchanged.
    """
    kind: str  # "text", "data", "file", ...
    text: str | None = None
    data: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = dict(self.extra)
        result["kind"] = self.kind
        if self.text is not None:
            result["text"] = self.text
        if self.data is not None:
            result["data"] = self.data
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Part":
        # Older peers send "type" instead of "kind"
        kind = data.get("kind") or data.get("type")
        if kind is None:
            kind = "text" if "text" in data else "unknown"
        text = data.get("text")
        extra = {
            k: v for k, v in data.items()
            if k not in ("kind", "type", "text", "data")
        }
        return cls(
            kind=kind,
            text=text if isinstance(text, str) else None,
            data=data.get("data") if isinstance(data.get("data"), dict) else None,
            extra=extra,
        )

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(kind="text", text=text)


def parts_text(parts: tuple[Part, ...] | list[Part]) -> str:
    """Concatenate the text of every text-bearing part, in order."""
    return "".join(p.text for p in parts if p.text is not None)


@dataclass(frozen=True)
class Message:
    """A message in the A2A protocol."""
    role: str  # "user" or "agent"
    parts: tuple[Part, ...] = ()
    message_id: str = field(default_factory=new_id)
    context_id: str | None = None
    task_id: str | None = None
    kind: str = "message"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "kind": self.kind,
            "role": self.role,
            "messageId": self.message_id,
            "parts": [p.to_dict() for p in self.parts],
        }
        if self.context_id is not None:
            result["contextId"] = self.context_id
        if self.task_id is not None:
            result["taskId"] = self.task_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            role=data.get("role", "agent"),
            parts=tuple(
                Part.from_dict(p) for p in data.get("parts", [])
                if isinstance(p, dict)
            ),
            message_id=data.get("messageId") or new_id(),
            context_id=data.get("contextId"),
            task_id=data.get("taskId"),
        )

    @classmethod
    def user_text(cls, text: str, **kwargs: Any) -> "Message":
        return cls(role="user", parts=(Part.from_text(text),), **kwargs)

    @classmethod
    def agent_text(cls, text: str, **kwargs: Any) -> "Message":
        return cls(role="agent", parts=(Part.from_text(text),), **kwargs)

    def get_text(self) -> str:
        """Extract all text parts concatenated."""
        return parts_text(self.parts)


@dataclass(frozen=True)
class TaskStatus:
    """Current status of a task."""
    state: TaskState
    timestamp: str | None = None
    message: Message | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"state": self.state.value}
        if self.timestamp is not None:
            result["timestamp"] = self.timestamp
        if self.message is not None:
            result["message"] = self.message.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskStatus":
        message = data.get("message")
        return cls(
            state=TaskState.parse(data.get("state")),
            timestamp=data.get("timestamp"),
            message=Message.from_dict(message) if isinstance(message, dict) else None,
        )


@dataclass(frozen=True)
class Artifact:
    """Output produced by a task."""
    artifact_id: str
    parts: tuple[Part, ...] = ()
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "artifactId": self.artifact_id,
            "parts": [p.to_dict() for p in self.parts],
        }
        if self.name is not None:
            result["name"] = self.name
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Artifact":
        return cls(
            artifact_id=data.get("artifactId") or new_id(),
            parts=tuple(
                Part.from_dict(p) for p in data.get("parts", [])
                if isinstance(p, dict)
            ),
            name=data.get("name"),
        )

    def get_text(self) -> str:
        return parts_text(self.parts)


@dataclass(frozen=True)
class Task:
    """A task in the A2A protocol."""
    id: str
    context_id: str
    status: TaskStatus
    history: tuple[Message, ...] = ()
    artifacts: tuple[Artifact, ...] = ()
    kind: str = "task"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "kind": self.kind,
            "id": self.id,
            "contextId": self.context_id,
            "status": self.status.to_dict(),
        }
        if self.history:
            result["history"] = [m.to_dict() for m in self.history]
        if self.artifacts:
            result["artifacts"] = [a.to_dict() for a in self.artifacts]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        status = data.get("status")
        return cls(
            id=data["id"],
            context_id=data.get("contextId", ""),
            status=(
                TaskStatus.from_dict(status) if isinstance(status, dict)
                else TaskStatus(state=TaskState.UNKNOWN)
            ),
            history=tuple(
                Message.from_dict(m) for m in data.get("history") or []
                if isinstance(m, dict)
            ),
            artifacts=tuple(
                Artifact.from_dict(a) for a in data.get("artifacts") or []
                if isinstance(a, dict)
            ),
        )


@dataclass(frozen=True)
class TaskStatusUpdateEvent:
    """Streamed change of a task's status."""
    task_id: str
    context_id: str
    status: TaskStatus
    final: bool = False
    kind: str = "status-update"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "taskId": self.task_id,
            "contextId": self.context_id,
            "status": self.status.to_dict(),
            "final": self.final,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskStatusUpdateEvent":
        return cls(
            task_id=data["taskId"],
            context_id=data.get("contextId", ""),
            status=TaskStatus.from_dict(data.get("status") or {}),
            final=bool(data.get("final", False)),
        )


@dataclass(frozen=True)
class TaskArtifactUpdateEvent:
    """Streamed artifact (or artifact chunk) produced by a task."""
    task_id: str
    context_id: str
    artifact: Artifact
    append: bool = False
    last_chunk: bool = False
    kind: str = "artifact-update"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "taskId": self.task_id,
            "contextId": self.context_id,
            "artifact": self.artifact.to_dict(),
            "append": self.append,
            "lastChunk": self.last_chunk,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskArtifactUpdateEvent":
        return cls(
            task_id=data["taskId"],
            context_id=data.get("contextId", ""),
            artifact=Artifact.from_dict(data.get("artifact") or {}),
            append=bool(data.get("append", False)),
            last_chunk=bool(data.get("lastChunk", False)),
        )


StreamEvent = Message | Task | TaskStatusUpdateEvent | TaskArtifactUpdateEvent


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request."""
    jsonrpc: str
    id: str | int | None
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jsonrpc": self.jsonrpc,
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JsonRpcRequest":
        return cls(
            jsonrpc=data.get("jsonrpc", "2.0"),
            id=data.get("id"),
            method=data["method"],
            params=data.get("params") or {},
        )


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response."""
    jsonrpc: str
    id: str | int | None
    result: dict[str, Any] | None = None
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        response: dict[str, Any] = {
            "jsonrpc": self.jsonrpc,
            "id": self.id,
        }
        if self.result is not None:
            response["result"] = self.result
        if self.error is not None:
            response["error"] = self.error
        return response


@dataclass(frozen=True)
class JsonRpcError:
    """JSON-RPC 2.0 error."""
    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            result["data"] = self.data
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JsonRpcError":
        code = data.get("code")
        return cls(
            code=code if isinstance(code, int) else ErrorCode.INTERNAL_ERROR,
            message=str(data.get("message", "Unknown error")),
            data=data.get("data"),
        )


# Standard JSON-RPC error codes
class ErrorCode:
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    # A2A error codes
    TASK_NOT_FOUND = -32001
    TASK_NOT_CANCELABLE = -32002
    UNSUPPORTED_OPERATION = -32004
    CONTENT_TYPE_NOT_SUPPORTED = -32005


@dataclass(frozen=True)
class AgentSkill:
    """A skill that an agent can perform."""
    id: str
    name: str
    description: str = ""
    tags: tuple[str, ...] = ()
    examples: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tags": list(self.tags),
            "examples": list(self.examples),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentSkill":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            tags=tuple(data.get("tags") or ()),
            examples=tuple(data.get("examples") or ()),
        )


@dataclass(frozen=True)
class AgentCapabilities:
    """Capabilities of an agent."""
    streaming: bool = False
    push_notifications: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "streaming": self.streaming,
            "pushNotifications": self.push_notifications,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentCapabilities":
        return cls(
            streaming=bool(data.get("streaming", False)),
            push_notifications=bool(data.get("pushNotifications", False)),
        )


@dataclass(frozen=True)
class AgentInterface:
    """An additional transport endpoint advertised by an agent."""
    url: str
    transport: str

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "transport": self.transport}


TRANSPORT_JSONRPC = "JSONRPC"


@dataclass(frozen=True)
class AgentCard:
    """Agent Card for A2A discovery."""
    name: str
    description: str
    url: str
    version: str = "1.0.0"
    protocol_version: str = "0.3.0"
    preferred_transport: str = TRANSPORT_JSONRPC
    capabilities: AgentCapabilities = field(default_factory=AgentCapabilities)
    default_input_modes: tuple[str, ...] = ("text",)
    default_output_modes: tuple[str, ...] = ("text",)
    skills: tuple[AgentSkill, ...] = ()
    additional_interfaces: tuple[AgentInterface, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "url": self.url,
            "version": self.version,
            "protocolVersion": self.protocol_version,
            "preferredTransport": self.preferred_transport,
            "capabilities": self.capabilities.to_dict(),
            "defaultInputModes": list(self.default_input_modes),
            "defaultOutputModes": list(self.default_output_modes),
            "skills": [s.to_dict() for s in self.skills],
        }
        if self.additional_interfaces:
            result["additionalInterfaces"] = [
                i.to_dict() for i in self.additional_interfaces
            ]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentCard":
        """Build a card from its JSON document.

        Raises:
            ValueError: If ``name`` or ``url`` is missing or empty.
        """
        for required in ("name", "url"):
            if not isinstance(data.get(required), str) or not data[required]:
                raise ValueError(f"agent card is missing '{required}'")

        interfaces = []
        for entry in data.get("additionalInterfaces") or []:
            if isinstance(entry, dict) and entry.get("url") and entry.get("transport"):
                interfaces.append(AgentInterface(entry["url"], entry["transport"]))

        return cls(
            name=data["name"],
            description=str(data.get("description", "")),
            url=data["url"],
            version=str(data.get("version", "1.0.0")),
            protocol_version=str(data.get("protocolVersion", "0.3.0")),
            preferred_transport=str(data.get("preferredTransport") or TRANSPORT_JSONRPC),
            capabilities=AgentCapabilities.from_dict(data.get("capabilities") or {}),
            default_input_modes=tuple(data.get("defaultInputModes") or ("text",)),
            default_output_modes=tuple(data.get("defaultOutputModes") or ("text",)),
            skills=tuple(
                AgentSkill.from_dict(s) for s in data.get("skills") or []
                if isinstance(s, dict)
            ),
            additional_interfaces=tuple(interfaces),
        )

    def jsonrpc_url(self) -> str | None:
        """Return the URL to use for JSON-RPC, or None if not offered."""
        if self.preferred_transport.upper() == TRANSPORT_JSONRPC:
            return self.url
        for interface in self.additional_interfaces:
            if interface.transport.upper() == TRANSPORT_JSONRPC:
                return interface.url
        return None


@dataclass(frozen=True)
class DelegationOutcome:
    """The single value a delegation surfaces to its caller."""
    status: str  # "success" or "error"
    content: str

    SUCCESS = "success"
    ERROR = "error"

    @property
    def ok(self) -> bool:
        return self.status == self.SUCCESS

    @classmethod
    def success(cls, content: str) -> "DelegationOutcome":
        return cls(status=cls.SUCCESS, content=content)

    @classmethod
    def error(cls, content: str) -> "DelegationOutcome":
        return cls(status=cls.ERROR, content=content)

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "content": self.content}
