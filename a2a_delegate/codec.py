"""JSON-RPC envelope encoding and decoding for A2A."""

import uuid
from typing import Any

from .errors import ProtocolError
from .types import (
    JsonRpcError,
    JsonRpcRequest,
    Message,
    StreamEvent,
    Task,
    TaskArtifactUpdateEvent,
    TaskStatusUpdateEvent,
)

METHOD_SEND = "message/send"
METHOD_STREAM = "message/stream"

_RESULT_KINDS = {
    "message": Message,
    "task": Task,
    "status-update": TaskStatusUpdateEvent,
    "artifact-update": TaskArtifactUpdateEvent,
}


def encode_request(
    message: Message,
    method: str = METHOD_SEND,
    request_id: str | int | None = None,
    configuration: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the JSON-RPC envelope carrying ``message``."""
    params: dict[str, Any] = {"message": message.to_dict()}
    if configuration:
        params["configuration"] = configuration
    request = JsonRpcRequest(
        jsonrpc="2.0",
        id=request_id if request_id is not None else str(uuid.uuid4()),
        method=method,
        params=params,
    )
    return request.to_dict()


def _infer_kind(result: dict[str, Any]) -> str | None:
    """Guess the result kind for peers that omit the ``kind`` field."""
    if "role" in result and "parts" in result:
        return "message"
    if "artifact" in result and "taskId" in result:
        return "artifact-update"
    if "status" in result and "taskId" in result:
        return "status-update"
    if "status" in result and "id" in result:
        return "task"
    return None


def decode_result(result: Any) -> StreamEvent:
    """Decode the ``result`` member of a response envelope."""
    if not isinstance(result, dict):
        raise ProtocolError(f"expected an object result, got {type(result).__name__}")

    kind = result.get("kind") or _infer_kind(result)
    result_type = _RESULT_KINDS.get(kind)
    if result_type is None:
        raise ProtocolError(f"unsupported result kind: {kind!r}")

    try:
        return result_type.from_dict(result)
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"malformed {kind} result: {e}") from e


def decode_response(
    payload: Any,
    expected_id: str | int | None = None,
) -> StreamEvent | JsonRpcError:
    """Decode a JSON-RPC response envelope.

    Returns the decoded result (message, task, or streamed update) or the
    ``JsonRpcError`` the remote sent. Unknown envelope members are ignored.

    Raises:
        ProtocolError: If the envelope is not a JSON-RPC 2.0 response or its
            id differs from ``expected_id``.
    """
    if not isinstance(payload, dict):
        raise ProtocolError("response is not a JSON object")
    if payload.get("jsonrpc") != "2.0":
        raise ProtocolError(f"unsupported jsonrpc version: {payload.get('jsonrpc')!r}")

    if expected_id is not None and payload.get("id") is not None:
        if payload["id"] != expected_id or type(payload["id"]) is not type(expected_id):
            raise ProtocolError(
                f"response id {payload['id']!r} does not match request id {expected_id!r}"
            )

    if "error" in payload and payload["error"] is not None:
        error = payload["error"]
        if not isinstance(error, dict):
            raise ProtocolError("error member is not an object")
        return JsonRpcError.from_dict(error)

    if "result" not in payload:
        raise ProtocolError("response has neither 'result' nor 'error'")

    return decode_result(payload["result"])


def decode_event(payload: Any, expected_id: str | int | None = None) -> StreamEvent | JsonRpcError:
    """Decode one streamed SSE ``data:`` payload (itself a response envelope)."""
    return decode_response(payload, expected_id=expected_id)
