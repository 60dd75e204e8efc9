"""A2A JSON-RPC Server for the Coordinator Agent.

Every task the coordinator receives is handed to the calculator agent. The
caller's bearer token is read when the request arrives and passed along with
that one delegation only.
"""

import logging
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from a2a_delegate.auth import bearer_token
from a2a_delegate.config import Settings
from a2a_delegate.dispatch import DelegationRequest, Dispatcher
from a2a_delegate.resolver import AGENT_CARD_PATH, LEGACY_AGENT_CARD_PATH
from a2a_delegate.types import (
    AgentCapabilities,
    AgentCard,
    AgentSkill,
    DelegationOutcome,
    ErrorCode,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
)

logger = logging.getLogger(__name__)

AGENT_NAME = "coordinator"


def build_agent_card(url: str) -> AgentCard:
    return AgentCard(
        name=AGENT_NAME,
        description="Answers questions by delegating calculations to the calculator agent.",
        url=url,
        version="1.0.0",
        capabilities=AgentCapabilities(streaming=False, push_notifications=False),
        skills=(
            AgentSkill(
                id="delegate-calculation",
                name="Delegate Calculation",
                description="Sends arithmetic problems to the calculator agent and returns its answer",
                tags=("math", "delegation"),
                examples=("What is 384 * 35?",),
            ),
        ),
    )


class CoordinatorService:
    """Turns inbound tasks into delegations."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self._transport = transport

    async def delegate(self, problem: str, auth_token: str | None) -> DelegationOutcome:
        """Delegate ``problem`` using the caller's token, or the configured one."""
        request = DelegationRequest(
            problem=problem,
            agent_name=self.settings.calculator_agent_name,
            agent_url=self.settings.calculator_url,
            auth_token=auth_token or self.settings.bearer_token,
        )
        dispatcher = Dispatcher(
            request,
            timeout=self.settings.timeout_seconds,
            retry_config=self.settings.retry_config,
            transport=self._transport,
            region=self.settings.aws_region,
        )
        return await dispatcher.run()

    async def handle(self, request: JsonRpcRequest, auth_token: str | None) -> JsonRpcResponse:
        """Handle a JSON-RPC request and return a response."""
        if request.method != "message/send":
            code = ErrorCode.UNSUPPORTED_OPERATION if request.method == "message/stream" \
                else ErrorCode.METHOD_NOT_FOUND
            return JsonRpcResponse(
                jsonrpc="2.0",
                id=request.id,
                error={"code": code, "message": f"Method not supported: {request.method}"},
            )

        raw_message = request.params.get("message")
        if not isinstance(raw_message, dict):
            return JsonRpcResponse(
                jsonrpc="2.0",
                id=request.id,
                error={"code": ErrorCode.INVALID_PARAMS, "message": "params.message is required"},
            )

        message = Message.from_dict(raw_message)
        problem = message.get_text()
        logger.info(f"Delegating task {request.id!r} to {self.settings.calculator_agent_name}")

        outcome = await self.delegate(problem, auth_token)

        reply = Message.agent_text(outcome.content, context_id=message.context_id)
        return JsonRpcResponse(jsonrpc="2.0", id=request.id, result=reply.to_dict())


def _rpc_error(request_id: Any, code: int, message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        content=JsonRpcResponse(
            jsonrpc="2.0",
            id=request_id,
            error={"code": code, "message": message},
        ).to_dict(),
        status_code=status_code,
    )


def create_a2a_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create the FastAPI application with A2A endpoints."""
    settings = settings or Settings.from_env()
    card = build_agent_card(settings.advertised_url(settings.coordinator_port))
    service = CoordinatorService(settings, transport=transport)

    app = FastAPI(title="Coordinator Agent - A2A Server")
    app.state.service = service
    app.state.agent_card = card

    @app.post("/")
    async def root_post(request: Request):
        """Handle all A2A JSON-RPC requests at root endpoint."""
        # Captured here and passed down explicitly; never stored
        auth_token = bearer_token(request.headers)

        try:
            body = await request.json()
        except ValueError:
            return _rpc_error(None, ErrorCode.PARSE_ERROR, "Parse error")
        if not isinstance(body, dict) or not isinstance(body.get("method"), str):
            request_id = body.get("id") if isinstance(body, dict) else None
            return _rpc_error(request_id, ErrorCode.INVALID_REQUEST, "Invalid request")

        rpc_request = JsonRpcRequest.from_dict(body)
        try:
            response = await service.handle(rpc_request, auth_token)
        except Exception as e:
            logger.exception("Unhandled error in coordinator agent")
            return _rpc_error(rpc_request.id, ErrorCode.INTERNAL_ERROR, str(e), status_code=500)
        return JSONResponse(content=response.to_dict())

    @app.get(AGENT_CARD_PATH)
    @app.get(LEGACY_AGENT_CARD_PATH)
    async def get_agent_card():
        """Return the Agent Card for A2A discovery."""
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
