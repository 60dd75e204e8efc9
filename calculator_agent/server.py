"""A2A JSON-RPC Server for the Calculator Agent.

Implements the A2A protocol with streaming support.
All A2A methods are handled at POST / (root endpoint).
"""

import json
import logging
import uuid
from collections import OrderedDict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from a2a_delegate.auth import bearer_token
from a2a_delegate.config import Settings
from a2a_delegate.resolver import AGENT_CARD_PATH, LEGACY_AGENT_CARD_PATH
from a2a_delegate.types import (
    AgentCapabilities,
    AgentCard,
    AgentSkill,
    Artifact,
    ErrorCode,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    Part,
    Task,
    TaskArtifactUpdateEvent,
    TaskState,
    TaskStatus,
    TaskStatusUpdateEvent,
)

from .calculator import CalculationError, solve

logger = logging.getLogger(__name__)

AGENT_NAME = "calculator"
MAX_STORED_TASKS = 1000


def build_agent_card(url: str, streaming: bool = False) -> AgentCard:
    return AgentCard(
        name=AGENT_NAME,
        description="Evaluates arithmetic expressions such as '384 * 35'.",
        url=url,
        version="1.0.0",
        capabilities=AgentCapabilities(streaming=streaming, push_notifications=False),
        default_input_modes=("text",),
        default_output_modes=("text",),
        skills=(
            AgentSkill(
                id="arithmetic",
                name="Arithmetic",
                description="Adds, subtracts, multiplies, divides and raises numbers to powers",
                tags=("math", "calculator"),
                examples=("384 * 35", "What is (12 + 3) / 5?"),
            ),
        ),
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _rpc_error(request_id: Any, code: int, message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        content=JsonRpcResponse(
            jsonrpc="2.0",
            id=request_id,
            error={"code": code, "message": message},
        ).to_dict(),
        status_code=status_code,
    )


def _sse(request_id: Any, result: Any) -> dict[str, str]:
    return {
        "data": json.dumps(
            JsonRpcResponse(jsonrpc="2.0", id=request_id, result=result.to_dict()).to_dict()
        ),
    }


class CalculatorService:
    """JSON-RPC handlers. Tasks created by streaming are kept in memory,
    oldest first out once more than ``max_tasks`` are stored."""

    def __init__(self, max_tasks: int = MAX_STORED_TASKS):
        self.tasks: OrderedDict[str, Task] = OrderedDict()
        self.max_tasks = max_tasks

    def _remember(self, task: Task) -> None:
        self.tasks[task.id] = task
        self.tasks.move_to_end(task.id)
        while len(self.tasks) > self.max_tasks:
            evicted, _ = self.tasks.popitem(last=False)
            logger.debug(f"Evicted task {evicted}")

    def _incoming_message(self, request: JsonRpcRequest) -> Message:
        message = request.params.get("message")
        if not isinstance(message, dict):
            raise ValueError("params.message is required")
        return Message.from_dict(message)

    async def handle(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Handle a non-streaming JSON-RPC request."""
        method_handlers = {
            "message/send": self.handle_message_send,
            "tasks/get": self.handle_task_get,
            "tasks/cancel": self.handle_task_cancel,
        }

        handler = method_handlers.get(request.method)
        if not handler:
            return JsonRpcResponse(
                jsonrpc="2.0",
                id=request.id,
                error={
                    "code": ErrorCode.METHOD_NOT_FOUND,
                    "message": f"Method not found: {request.method}",
                },
            )

        return await handler(request)

    async def handle_message_send(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Handle message/send - evaluate the expression and reply with a message."""
        try:
            message = self._incoming_message(request)
        except ValueError as e:
            return JsonRpcResponse(
                jsonrpc="2.0",
                id=request.id,
                error={"code": ErrorCode.INVALID_PARAMS, "message": str(e)},
            )

        problem = message.get_text()
        logger.info(f"Calculating: {problem}")
        try:
            answer = solve(problem)
        except CalculationError as e:
            logger.info(f"Cannot calculate {problem!r}: {e}")
            return JsonRpcResponse(
                jsonrpc="2.0",
                id=request.id,
                error={"code": ErrorCode.INVALID_PARAMS, "message": str(e)},
            )

        reply = Message.agent_text(answer, context_id=message.context_id)
        return JsonRpcResponse(jsonrpc="2.0", id=request.id, result=reply.to_dict())

    async def handle_task_get(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Handle tasks/get - retrieve a task."""
        task_id = request.params.get("id")
        task = self.tasks.get(task_id)

        if not task:
            return JsonRpcResponse(
                jsonrpc="2.0",
                id=request.id,
                error={
                    "code": ErrorCode.TASK_NOT_FOUND,
                    "message": f"Task not found: {task_id}",
                },
            )

        return JsonRpcResponse(jsonrpc="2.0", id=request.id, result=task.to_dict())

    async def handle_task_cancel(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Handle tasks/cancel. Calculations finish immediately, so only
        tasks that are somehow still open can be canceled."""
        task_id = request.params.get("id")
        task = self.tasks.get(task_id)

        if not task:
            return JsonRpcResponse(
                jsonrpc="2.0",
                id=request.id,
                error={
                    "code": ErrorCode.TASK_NOT_FOUND,
                    "message": f"Task not found: {task_id}",
                },
            )
        if task.status.state.is_terminal:
            return JsonRpcResponse(
                jsonrpc="2.0",
                id=request.id,
                error={
                    "code": ErrorCode.TASK_NOT_CANCELABLE,
                    "message": f"Task {task_id} is already {task.status.state.value}",
                },
            )

        task = replace(task, status=TaskStatus(state=TaskState.CANCELED, timestamp=_now()))
        self._remember(task)
        return JsonRpcResponse(jsonrpc="2.0", id=request.id, result=task.to_dict())

    async def stream_task(self, request: JsonRpcRequest) -> AsyncGenerator[dict[str, str], None]:
        """Stream task execution via SSE."""
        message = self._incoming_message(request)
        context_id = message.context_id or uuid.uuid4().hex
        task = Task(
            id=uuid.uuid4().hex,
            context_id=context_id,
            status=TaskStatus(state=TaskState.SUBMITTED, timestamp=_now()),
            history=(replace(message, context_id=context_id),),
        )
        self._remember(task)
        yield _sse(request.id, task)

        working = TaskStatus(state=TaskState.WORKING, timestamp=_now())
        task = replace(task, status=working)
        self._remember(task)
        yield _sse(request.id, TaskStatusUpdateEvent(task.id, context_id, working))

        try:
            answer = solve(message.get_text())
        except CalculationError as e:
            failed = TaskStatus(
                state=TaskState.FAILED,
                timestamp=_now(),
                message=Message.agent_text(str(e), context_id=context_id, task_id=task.id),
            )
            self._remember(replace(task, status=failed))
            yield _sse(request.id, TaskStatusUpdateEvent(task.id, context_id, failed, final=True))
            return

        artifact = Artifact(
            artifact_id=uuid.uuid4().hex,
            name="result",
            parts=(Part.from_text(answer),),
        )
        yield _sse(
            request.id,
            TaskArtifactUpdateEvent(task.id, context_id, artifact, last_chunk=True),
        )

        completed = TaskStatus(state=TaskState.COMPLETED, timestamp=_now())
        self._remember(replace(task, status=completed, artifacts=(artifact,)))
        yield _sse(request.id, TaskStatusUpdateEvent(task.id, context_id, completed, final=True))


def _check_authorization(request: Request, accepted_tokens: frozenset[str]) -> JSONResponse | None:
    """Enforce bearer auth when accepted tokens are configured.

    401 for a missing or malformed header, 403 for a token we do not accept.
    """
    if not accepted_tokens:
        return None
    token = bearer_token(request.headers)
    if token is None:
        return JSONResponse({"detail": "Missing or malformed bearer token"}, status_code=401)
    if token not in accepted_tokens:
        return JSONResponse({"detail": "Invalid or expired token"}, status_code=403)
    return None


def create_a2a_app(settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI application with A2A endpoints."""
    settings = settings or Settings.from_env()
    card = build_agent_card(
        settings.advertised_url(settings.calculator_port),
        streaming=settings.calculator_streaming,
    )
    service = CalculatorService()

    app = FastAPI(title="Calculator Agent - A2A Server")
    app.state.service = service
    app.state.agent_card = card

    @app.post("/")
    async def root_post(request: Request):
        """Handle all A2A JSON-RPC requests at root endpoint.

        Dispatches to the appropriate handler based on the JSON-RPC method.
        For message/stream, returns an SSE streaming response.
        """
        denied = _check_authorization(request, settings.accepted_tokens)
        if denied is not None:
            return denied

        try:
            body = await request.json()
        except ValueError:
            return _rpc_error(None, ErrorCode.PARSE_ERROR, "Parse error")
        if not isinstance(body, dict) or not isinstance(body.get("method"), str):
            request_id = body.get("id") if isinstance(body, dict) else None
            return _rpc_error(request_id, ErrorCode.INVALID_REQUEST, "Invalid request")

        rpc_request = JsonRpcRequest.from_dict(body)
        try:
            if rpc_request.method == "message/stream":
                if not card.capabilities.streaming:
                    return _rpc_error(
                        rpc_request.id,
                        ErrorCode.UNSUPPORTED_OPERATION,
                        "Streaming is not supported by this agent",
                    )
                if not isinstance(rpc_request.params.get("message"), dict):
                    return _rpc_error(rpc_request.id, ErrorCode.INVALID_PARAMS, "params.message is required")
                return EventSourceResponse(
                    service.stream_task(rpc_request),
                    media_type="text/event-stream",
                )

            response = await service.handle(rpc_request)
            return JSONResponse(content=response.to_dict())
        except Exception as e:
            logger.exception("Unhandled error in calculator agent")
            return _rpc_error(rpc_request.id, ErrorCode.INTERNAL_ERROR, str(e), status_code=500)

    @app.get(AGENT_CARD_PATH)
    @app.get(LEGACY_AGENT_CARD_PATH)
    async def get_agent_card(request: Request):
        """Return the Agent Card for A2A discovery."""
        denied = _check_authorization(request, settings.accepted_tokens)
        if denied is not None:
            return denied
        return card.to_dict()

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/ping")
    async def ping():
        """Ping endpoint for AgentCore health checks."""
        return {"status": "healthy"}

    return app
