"""Delegation of a problem to a remote agent.

A ``Dispatcher`` walks one delegation through

    idle -> resolving -> sending -> awaiting_response -> completed | failed

and always ends with a ``DelegationOutcome``: configuration problems,
discovery failures, transport errors, timeouts and malformed replies all
become an error outcome with a readable diagnostic.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncGenerator

import httpx

from .bridge import run_sync
from .client import A2AClient, RetryConfig
from .errors import ConfigurationError, DelegationError, RemoteAgentError, TransportError
from .normalizer import TaskAccumulator, iter_text_increments, normalize, task_text
from .types import DelegationOutcome, ErrorCode, Message, StreamEvent, Task, TaskState

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0

UNSUCCESSFUL_STATES = (TaskState.FAILED, TaskState.CANCELED, TaskState.REJECTED)


class DispatchState(str, Enum):
    """Where a delegation currently is."""
    IDLE = "idle"
    RESOLVING = "resolving"
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class DelegationRequest:
    """One problem to hand to a remote agent.

    ``auth_token`` is the caller's own credential; it is attached to this
    delegation only.
    """
    problem: str
    agent_name: str
    agent_url: str | None
    auth_token: str | None = None
    request_id: str | int | None = None

    def __repr__(self) -> str:
        token = "<set>" if self.auth_token else None
        return (
            f"DelegationRequest(problem={self.problem!r}, agent_name={self.agent_name!r}, "
            f"agent_url={self.agent_url!r}, auth_token={token}, request_id={self.request_id!r})"
        )


class Dispatcher:
    """Runs a single delegation. Not reusable."""

    def __init__(
        self,
        request: DelegationRequest,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        region: str | None = None,
    ):
        self.request = request
        self.timeout = timeout
        self.retry_config = retry_config
        self._transport = transport
        self._region = region
        self.state = DispatchState.IDLE
        self.transitions: list[DispatchState] = [DispatchState.IDLE]
        self.outcome: DelegationOutcome | None = None

    def _enter(self, state: DispatchState) -> None:
        logger.debug(f"Delegation to {self.request.agent_name}: {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    def _start(self) -> None:
        if not self.request.agent_url:
            raise ConfigurationError("no target address was provided", agent=self.request.agent_name)
        self._enter(DispatchState.RESOLVING)

    def _client(self) -> A2AClient:
        return A2AClient(
            self.request.agent_url,
            self.request.agent_name,
            auth_token=self.request.auth_token,
            timeout=self.timeout,
            retry_config=self.retry_config,
            transport=self._transport,
            region=self._region,
        )

    def _complete(self, content: str) -> DelegationOutcome:
        self._enter(DispatchState.COMPLETED)
        self.outcome = DelegationOutcome.success(content)
        logger.info(f"Delegation to {self.request.agent_name} completed ({len(content)} characters)")
        return self.outcome

    def _fail(self, error: DelegationError) -> DelegationOutcome:
        self._enter(DispatchState.FAILED)
        self.outcome = DelegationOutcome.error(error.user_message())
        logger.warning(f"Delegation to {self.request.agent_name} failed: {error}")
        return self.outcome

    def _timeout_error(self) -> TransportError:
        return TransportError(
            f"no answer within {self.timeout:g} seconds",
            agent=self.request.agent_name,
            timed_out=True,
        )

    async def run(self) -> DelegationOutcome:
        """Run the delegation and return its outcome.

        Raises:
            RuntimeError: If this dispatcher has already run.
        """
        if self.state is not DispatchState.IDLE:
            raise RuntimeError("a Dispatcher can only run once")
        try:
            self._start()
            content = await asyncio.wait_for(self._exchange(), timeout=self.timeout)
        except asyncio.TimeoutError:
            return self._fail(self._timeout_error())
        except DelegationError as e:
            return self._fail(e)
        except httpx.HTTPError as e:
            return self._fail(TransportError(str(e), agent=self.request.agent_name))
        except Exception as e:
            logger.exception(f"Unexpected error delegating to {self.request.agent_name}")
            return self._fail(DelegationError(f"{type(e).__name__}: {e}", agent=self.request.agent_name))
        return self._complete(content)

    def _reply_text(self, reply: StreamEvent | None) -> str:
        """Normalize the final reply, failing on an unsuccessful task."""
        if reply is None:
            return ""
        if isinstance(reply, Task) and reply.status.state in UNSUCCESSFUL_STATES:
            raise RemoteAgentError(
                task_text(reply) or f"the task ended as {reply.status.state.value}",
                code=ErrorCode.INTERNAL_ERROR,
                agent=self.request.agent_name,
            )
        return normalize(reply)

    async def _exchange(self) -> str:
        async with self._client() as client:
            card = await client.get_agent_card()

            self._enter(DispatchState.SENDING)
            message = Message.user_text(self.request.problem)

            if card.capabilities.streaming:
                events = client.stream_message(message, card, request_id=self.request.request_id)
                self._enter(DispatchState.AWAITING_RESPONSE)
                return self._reply_text(await self._collect(events))

            self._enter(DispatchState.AWAITING_RESPONSE)
            reply = await client.send_message(message, card, request_id=self.request.request_id)
            return self._reply_text(reply)

    async def _collect(self, events: AsyncGenerator[StreamEvent, None]) -> StreamEvent | None:
        """Reduce a stream to one reply: the first Message, or else the task
        built from every event up to the terminal status."""
        accumulator = TaskAccumulator()
        try:
            async for event in events:
                if isinstance(event, Message):
                    return event
                accumulator.apply(event)
                if accumulator.done:
                    break
        finally:
            await events.aclose()
        return accumulator.task

    async def stream(self) -> AsyncGenerator[str, None]:
        """Yield text increments as the remote agent produces them.

        The generator is finite and cannot be restarted. Failures end it
        early; ``self.outcome`` then holds the error outcome. On success
        ``self.outcome`` holds the concatenated text.
        """
        if self.state is not DispatchState.IDLE:
            raise RuntimeError("a Dispatcher can only run once")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        chunks: list[str] = []
        accumulator = TaskAccumulator()

        async def bounded(awaitable):
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError()
            return await asyncio.wait_for(awaitable, timeout=remaining)

        async def tap(events: AsyncGenerator[StreamEvent, None]):
            async for event in events:
                if not isinstance(event, Message):
                    accumulator.apply(event)
                yield event

        try:
            self._start()
            async with self._client() as client:
                card = await bounded(client.get_agent_card())
                self._enter(DispatchState.SENDING)
                message = Message.user_text(self.request.problem)

                if not card.capabilities.streaming:
                    self._enter(DispatchState.AWAITING_RESPONSE)
                    reply = await bounded(
                        client.send_message(message, card, request_id=self.request.request_id)
                    )
                    text = self._reply_text(reply)
                    if text:
                        chunks.append(text)
                        yield text
                else:
                    events = client.stream_message(message, card, request_id=self.request.request_id)
                    tapped = tap(events)
                    increments = iter_text_increments(tapped)
                    self._enter(DispatchState.AWAITING_RESPONSE)
                    try:
                        while True:
                            try:
                                text = await bounded(increments.__anext__())
                            except StopAsyncIteration:
                                break
                            chunks.append(text)
                            yield text
                    finally:
                        await increments.aclose()
                        await tapped.aclose()
                        await events.aclose()
                    if accumulator.task is not None:
                        self._reply_text(accumulator.task)
        except asyncio.TimeoutError:
            self._fail(self._timeout_error())
            return
        except DelegationError as e:
            self._fail(e)
            return
        except httpx.HTTPError as e:
            self._fail(TransportError(str(e), agent=self.request.agent_name))
            return
        except Exception as e:
            logger.exception(f"Unexpected error streaming from {self.request.agent_name}")
            self._fail(DelegationError(f"{type(e).__name__}: {e}", agent=self.request.agent_name))
            return

        self._complete("".join(chunks))


async def delegate(
    request: DelegationRequest,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    retry_config: RetryConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    region: str | None = None,
) -> DelegationOutcome:
    """Delegate ``request`` and return the outcome."""
    dispatcher = Dispatcher(
        request,
        timeout=timeout,
        retry_config=retry_config,
        transport=transport,
        region=region,
    )
    return await dispatcher.run()


async def stream_delegation(
    request: DelegationRequest,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    retry_config: RetryConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    region: str | None = None,
) -> AsyncGenerator[str, None]:
    """Delegate ``request`` and yield text increments as they arrive.

    Errors end the stream early; use ``Dispatcher.stream`` directly to
    inspect the outcome afterwards.
    """
    dispatcher = Dispatcher(
        request,
        timeout=timeout,
        retry_config=retry_config,
        transport=transport,
        region=region,
    )
    increments = dispatcher.stream()
    try:
        async for text in increments:
            yield text
    finally:
        await increments.aclose()


def delegate_sync(
    request: DelegationRequest,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    retry_config: RetryConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    region: str | None = None,
) -> DelegationOutcome:
    """Blocking variant of ``delegate`` for synchronous callers."""
    return run_sync(
        delegate(
            request,
            timeout=timeout,
            retry_config=retry_config,
            transport=transport,
            region=region,
        )
    )
