"""A2A Client for calling a remote agent.

Implements the A2A protocol client with optional retry logic and streaming
support. Targets may be plain base URLs (local) or AgentCore runtime ARNs
(deployed), which are turned into the runtime's invocation URL.

One client serves one delegation: the HTTP session and the bearer token it
carries are created on entry and released on exit.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, AsyncGenerator
from urllib.parse import quote

import httpx

from .codec import METHOD_SEND, METHOD_STREAM, decode_event, decode_response, encode_request
from .errors import (
    AuthorizationError,
    ProtocolError,
    RemoteAgentError,
    TransportError,
)
from .resolver import resolve_agent_card
from .types import AgentCard, JsonRpcError, Message, StreamEvent

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Amzn-Bedrock-AgentCore-Runtime-Session-Id"


def _is_arn(value: str) -> bool:
    """Check if a string is an AWS ARN."""
    return value.startswith("arn:aws:")


def agentcore_invocation_url(arn: str, region: str | None = None) -> str:
    """Build the AgentCore invocation URL for a runtime ARN."""
    # arn:aws:bedrock-agentcore:<region>:<account>:runtime/<id>
    fields = arn.split(":")
    arn_region = fields[3] if len(fields) > 3 and fields[3] else None
    region = arn_region or region or "us-east-1"
    return (
        f"https://bedrock-agentcore.{region}.amazonaws.com"
        f"/runtimes/{quote(arn, safe='')}/invocations"
    )


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Only transport failures are retried. The default of a single attempt
    means no retries unless configured.
    """
    max_attempts: int = 1
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    exponential_base: float = 2.0

    def delay(self, attempt: int) -> float:
        return min(
            self.base_delay_seconds * (self.exponential_base ** attempt),
            self.max_delay_seconds,
        )


class A2AClient:
    """Client for communicating with an A2A-compliant agent."""

    def __init__(
        self,
        agent_url: str,
        agent_name: str,
        auth_token: str | None = None,
        timeout: float = 300.0,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        region: str | None = None,
    ):
        """Initialize the A2A client.

        Args:
            agent_url: Base URL or runtime ARN of the target agent.
            agent_name: Name of the target agent (for logging and errors).
            auth_token: Bearer token sent with every request of this client.
            timeout: Per-request timeout in seconds.
            retry_config: Configuration for retry behavior.
            transport: Optional httpx transport (used by tests).
            region: AWS region used when the ARN does not carry one.
        """
        self._use_agentcore = _is_arn(agent_url)
        if self._use_agentcore:
            self.agent_url = agentcore_invocation_url(agent_url, region)
        else:
            self.agent_url = agent_url.rstrip("/")
        self.agent_name = agent_name
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self._auth_token = auth_token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "A2AClient":
        self._client = self._build_client()
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_client(self) -> httpx.AsyncClient:
        headers = {}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        if self._use_agentcore:
            headers[SESSION_HEADER] = str(uuid.uuid4())
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=headers,
            transport=self._transport,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("A2AClient must be used as an async context manager")
        return self._client

    async def get_agent_card(self) -> AgentCard:
        """Fetch the agent's Agent Card for discovery."""
        return await resolve_agent_card(
            self.client, self.agent_url, agent_name=self.agent_name
        )

    def _endpoint(self, card: AgentCard) -> str:
        url = card.jsonrpc_url()
        if url is None:
            raise ProtocolError(
                f"agent only offers the {card.preferred_transport} transport",
                agent=self.agent_name,
            )
        return url

    async def send_message(
        self,
        message: Message,
        card: AgentCard,
        request_id: str | int | None = None,
    ) -> StreamEvent:
        """Send a message and wait for the atomic reply.

        Returns:
            The decoded ``result``: a Message or a Task.

        Raises:
            RemoteAgentError: If the agent answered with a JSON-RPC error.
        """
        payload = encode_request(message, method=METHOD_SEND, request_id=request_id)
        body = await self._send_with_retry(self._endpoint(card), payload)
        result = decode_response(body, expected_id=payload["id"])
        return self._check(result)

    async def stream_message(
        self,
        message: Message,
        card: AgentCard,
        request_id: str | int | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Send a message and subscribe to streamed updates.

        Yields:
            Decoded events (Task, status updates, artifact updates or a
            Message) in the order the agent emitted them.
        """
        payload = encode_request(message, method=METHOD_STREAM, request_id=request_id)
        url = self._endpoint(card)

        try:
            async with self.client.stream(
                "POST",
                url,
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                self._raise_for_status(response)

                content_type = response.headers.get("content-type", "")
                if "text/event-stream" not in content_type:
                    # Some agents answer a stream request with a single envelope
                    body = self._parse_json(await response.aread())
                    yield self._check(decode_response(body, expected_id=payload["id"]))
                    return

                data_lines: list[str] = []
                async for line in response.aiter_lines():
                    if line.startswith("data:"):
                        data_lines.append(line[5:].strip())
                        continue
                    if line or not data_lines:
                        continue
                    # A blank line ends the event
                    body = self._parse_json("\n".join(data_lines))
                    data_lines = []
                    yield self._check(decode_event(body, expected_id=payload["id"]))

                if data_lines:
                    body = self._parse_json("\n".join(data_lines))
                    yield self._check(decode_event(body, expected_id=payload["id"]))
        except httpx.InvalidURL as e:
            raise ProtocolError(f"agent card advertises an invalid url {url!r}", agent=self.agent_name) from e
        except httpx.TimeoutException as e:
            raise TransportError(f"timed out streaming from {url}", agent=self.agent_name, timed_out=True) from e
        except httpx.HTTPError as e:
            raise TransportError(f"stream from {url} failed: {e}", agent=self.agent_name) from e

    def _check(self, result: StreamEvent | JsonRpcError) -> StreamEvent:
        if isinstance(result, JsonRpcError):
            raise RemoteAgentError(
                result.message,
                code=result.code,
                agent=self.agent_name,
                data=result.data if isinstance(result.data, dict) else None,
            )
        return result

    def _parse_json(self, raw: str | bytes) -> Any:
        try:
            return json.loads(raw)
        except ValueError as e:
            raise ProtocolError("reply body is not valid JSON", agent=self.agent_name) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code in (401, 403):
            raise AuthorizationError(
                f"HTTP {response.status_code}",
                agent=self.agent_name,
                status_code=response.status_code,
            )
        if response.is_error:
            raise TransportError(
                f"HTTP {response.status_code} from {response.request.url}",
                agent=self.agent_name,
                data={"statusCode": response.status_code},
            )

    async def _post(self, url: str, payload: dict[str, Any]) -> Any:
        """Send a JSON-RPC request to the agent."""
        try:
            response = await self.client.post(url, json=payload)
        except httpx.InvalidURL as e:
            raise ProtocolError(f"agent card advertises an invalid url {url!r}", agent=self.agent_name) from e
        except httpx.TimeoutException as e:
            raise TransportError(f"timed out posting to {url}", agent=self.agent_name, timed_out=True) from e
        except httpx.HTTPError as e:
            raise TransportError(f"could not post to {url}: {e}", agent=self.agent_name) from e

        self._raise_for_status(response)
        return self._parse_json(response.content)

    async def _send_with_retry(self, url: str, payload: dict[str, Any]) -> Any:
        """Send a request, retrying transport failures per ``retry_config``."""
        attempts = max(1, self.retry_config.max_attempts)

        for attempt in range(attempts - 1):
            try:
                return await self._post(url, payload)
            except TransportError as e:
                delay = self.retry_config.delay(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{attempts} to {self.agent_name} failed ({e.message}), "
                    f"retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        return await self._post(url, payload)
