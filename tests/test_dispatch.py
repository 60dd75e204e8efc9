"""Delegation dispatcher tests."""

import asyncio
import json
import time
import unittest

import httpx

from a2a_delegate.client import RetryConfig
from a2a_delegate.config import Settings
from a2a_delegate.dispatch import (
    DelegationRequest,
    Dispatcher,
    DispatchState,
    delegate,
    delegate_sync,
    stream_delegation,
)
from a2a_delegate.types import DelegationOutcome
from calculator_agent.server import create_a2a_app

from fakes import BASE_URL, FakeAgent, card_document, streamed_task


def _request(problem="384 * 35", url=BASE_URL, token=None, request_id=None):
    return DelegationRequest(
        problem=problem,
        agent_name="calculator",
        agent_url=url,
        auth_token=token,
        request_id=request_id,
    )


def _calculator_transport(**settings) -> httpx.ASGITransport:
    app = create_a2a_app(Settings(runtime_url=f"{BASE_URL}/", **settings))
    return httpx.ASGITransport(app=app)


class TestDispatcher(unittest.IsolatedAsyncioTestCase):
    """Tests for a single delegation."""

    async def test_calculator_end_to_end(self):
        """Should return the calculator's answer as a success outcome."""
        dispatcher = Dispatcher(_request(), transport=_calculator_transport())
        outcome = await dispatcher.run()

        self.assertEqual(outcome, DelegationOutcome.success("13440"))
        self.assertEqual(dispatcher.transitions, [
            DispatchState.IDLE,
            DispatchState.RESOLVING,
            DispatchState.SENDING,
            DispatchState.AWAITING_RESPONSE,
            DispatchState.COMPLETED,
        ])
        self.assertIs(dispatcher.outcome, outcome)

    async def test_message_reply_text(self):
        """Should return exactly the text of a message reply."""
        agent = FakeAgent()
        outcome = await delegate(_request("6 * 7"), transport=agent.transport())
        self.assertEqual(outcome.status, DelegationOutcome.SUCCESS)
        self.assertEqual(outcome.content, "42")

    async def test_streaming_task(self):
        """Should collect a streamed task into one answer."""
        agent = FakeAgent(stream_results=streamed_task("13440"))
        dispatcher = Dispatcher(_request(), transport=agent.transport())
        outcome = await dispatcher.run()

        self.assertEqual(outcome, DelegationOutcome.success("13440"))
        self.assertEqual(agent.bodies[0]["method"], "message/stream")
        self.assertEqual(dispatcher.state, DispatchState.COMPLETED)

    async def test_streamed_failure(self):
        """Should report a failed task as an error outcome."""
        agent = FakeAgent(stream_results=streamed_task("division by zero", state="failed"))
        outcome = await delegate(_request("1 / 0"), transport=agent.transport())
        self.assertFalse(outcome.ok)
        self.assertIn("division by zero", outcome.content)

    async def test_failed_task_reply(self):
        """Should report a failed task returned by message/send as an error."""
        agent = FakeAgent(reply={
            "kind": "task",
            "id": "t",
            "contextId": "c",
            "status": {
                "state": "failed",
                "message": {"role": "agent", "parts": [{"kind": "text", "text": "cannot parse"}]},
            },
        })
        outcome = await delegate(_request("hello"), transport=agent.transport())
        self.assertEqual(outcome.status, DelegationOutcome.ERROR)
        self.assertIn("cannot parse", outcome.content)

    async def test_missing_url(self):
        """Should fail without any network traffic when no address is set."""
        agent = FakeAgent()
        dispatcher = Dispatcher(_request(url=None), transport=agent.transport())
        outcome = await dispatcher.run()

        self.assertFalse(outcome.ok)
        self.assertIn("calculator", outcome.content)
        self.assertEqual(dispatcher.transitions, [DispatchState.IDLE, DispatchState.FAILED])
        self.assertEqual(agent.requests, [])

    async def test_card_without_url_never_sends(self):
        """Should stop before sending when the card is unusable."""
        document = card_document()
        del document["url"]
        agent = FakeAgent(card=document)
        dispatcher = Dispatcher(_request(), transport=agent.transport())
        outcome = await dispatcher.run()

        self.assertFalse(outcome.ok)
        self.assertNotIn(DispatchState.SENDING, dispatcher.transitions)
        self.assertEqual(agent.posts, [])

    async def test_auth_rejected_at_discovery(self):
        """Should explain that the agent refused our credentials."""
        agent = FakeAgent(card_status=403)
        outcome = await delegate(_request(token="stale"), transport=agent.transport())
        self.assertFalse(outcome.ok)
        self.assertIn("credentials", outcome.content)

    async def test_remote_error(self):
        """Should turn a JSON-RPC error into an error outcome."""
        agent = FakeAgent(raw_reply={
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32602, "message": "division by zero"},
        })
        outcome = await delegate(_request("1 / 0"), transport=agent.transport())
        self.assertFalse(outcome.ok)
        self.assertIn("division by zero", outcome.content)

    async def test_calculator_rejects_expression(self):
        """Should report the calculator's own error message."""
        outcome = await delegate(_request("1 / 0"), transport=_calculator_transport())
        self.assertFalse(outcome.ok)
        self.assertIn("division by zero", outcome.content.lower())

    async def test_malformed_reply(self):
        """Should turn a malformed envelope into an error outcome."""
        agent = FakeAgent(raw_reply={"hello": "world"})
        outcome = await delegate(_request(), transport=agent.transport())
        self.assertFalse(outcome.ok)

    async def test_transport_error(self):
        """Should turn a refused connection into an error outcome."""
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        outcome = await delegate(_request(), transport=httpx.MockTransport(refuse))
        self.assertFalse(outcome.ok)
        self.assertIn("couldn't", outcome.content)

    async def test_timeout(self):
        """Should give up once the timeout elapses."""
        agent = FakeAgent(delay=5.0)
        dispatcher = Dispatcher(_request(), timeout=0.2, transport=agent.transport())

        started = time.monotonic()
        outcome = await dispatcher.run()
        elapsed = time.monotonic() - started

        self.assertFalse(outcome.ok)
        self.assertIn("too long", outcome.content)
        self.assertLess(elapsed, 2.0)
        self.assertEqual(dispatcher.state, DispatchState.FAILED)

    async def test_runs_once(self):
        """Should refuse to run a second time."""
        dispatcher = Dispatcher(_request(), transport=FakeAgent().transport())
        await dispatcher.run()
        with self.assertRaises(RuntimeError):
            await dispatcher.run()

    async def test_retries_when_configured(self):
        """Should retry a failed post when more attempts are allowed."""
        agent = FakeAgent()
        posts = {"count": 0}

        async def flaky(request):
            if request.method == "POST":
                posts["count"] += 1
                if posts["count"] == 1:
                    raise httpx.ReadError("Connection reset", request=request)
            return await agent.handler(request)

        outcome = await delegate(
            _request(),
            retry_config=RetryConfig(max_attempts=2, base_delay_seconds=0.0),
            transport=httpx.MockTransport(flaky),
        )
        self.assertEqual(outcome.content, "42")

    async def test_forwards_each_callers_token(self):
        """Concurrent delegations must each carry their own caller's token."""
        seen: list[tuple[str, str | None]] = []

        async def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json=card_document())
            await asyncio.sleep(0.05)
            envelope = json.loads(request.content)
            seen.append((request.content.decode(), request.headers.get("authorization")))
            problem = envelope["params"]["message"]["parts"][0]["text"]
            return httpx.Response(200, json={
                "jsonrpc": "2.0",
                "id": envelope["id"],
                "result": {
                    "kind": "message",
                    "role": "agent",
                    "messageId": "m",
                    "parts": [{"kind": "text", "text": problem}],
                },
            })

        transport = httpx.MockTransport(handler)
        alice, bob = await asyncio.gather(
            delegate(_request("alice", token="token-a"), transport=transport),
            delegate(_request("bob", token="token-b"), transport=transport),
        )

        self.assertEqual((alice.content, bob.content), ("alice", "bob"))
        for body, header in seen:
            expected = "Bearer token-a" if '"alice"' in body else "Bearer token-b"
            self.assertEqual(header, expected)

    async def test_without_token(self):
        """Should send no Authorization header when the caller has none."""
        agent = FakeAgent()
        await delegate(_request(token=None), transport=agent.transport())
        for request in agent.requests:
            self.assertNotIn("authorization", request.headers)

    def test_request_repr_hides_token(self):
        """Should never show the token in a request's repr."""
        self.assertNotIn("secret", repr(_request(token="secret")))


class TestDispatcherStream(unittest.IsolatedAsyncioTestCase):
    """Tests for incremental results."""

    async def test_streamed_increments(self):
        """Should yield each artifact chunk, then record the full text."""
        results = streamed_task("13")
        results.insert(3, {
            "kind": "artifact-update",
            "taskId": "task-1",
            "contextId": "ctx-1",
            "artifact": {"artifactId": "a-1", "parts": [{"kind": "text", "text": "440"}]},
            "append": True,
        })
        agent = FakeAgent(stream_results=results)
        dispatcher = Dispatcher(_request(), transport=agent.transport())

        chunks = [chunk async for chunk in dispatcher.stream()]

        self.assertEqual(chunks, ["13", "440"])
        self.assertEqual(dispatcher.outcome, DelegationOutcome.success("13440"))

    async def test_atomic_agent(self):
        """Should yield the whole answer once from a non-streaming agent."""
        dispatcher = Dispatcher(_request(), transport=_calculator_transport())
        chunks = [chunk async for chunk in dispatcher.stream()]
        self.assertEqual(chunks, ["13440"])
        self.assertTrue(dispatcher.outcome.ok)

    async def test_failure_ends_stream(self):
        """Should end early and record an error outcome."""
        agent = FakeAgent(stream_results=streamed_task("division by zero", state="failed"))
        dispatcher = Dispatcher(_request("1 / 0"), transport=agent.transport())
        chunks = [chunk async for chunk in dispatcher.stream()]

        self.assertEqual(chunks, [])
        self.assertFalse(dispatcher.outcome.ok)
        self.assertEqual(dispatcher.state, DispatchState.FAILED)

    async def test_stream_delegation(self):
        """Should stream increments without a dispatcher in hand."""
        agent = FakeAgent(stream_results=streamed_task("13440"))
        chunks = [chunk async for chunk in stream_delegation(_request(), transport=agent.transport())]
        self.assertEqual(chunks, ["13440"])

    async def test_missing_url(self):
        """Should yield nothing when no address is configured."""
        dispatcher = Dispatcher(_request(url=""))
        chunks = [chunk async for chunk in dispatcher.stream()]
        self.assertEqual(chunks, [])
        self.assertFalse(dispatcher.outcome.ok)

    async def test_invalid_target_url(self):
        """A target address httpx cannot parse ends in an error outcome."""
        dispatcher = Dispatcher(_request(url="http://[::1"))
        chunks = [chunk async for chunk in dispatcher.stream()]

        self.assertEqual(chunks, [])
        self.assertFalse(dispatcher.outcome.ok)
        self.assertEqual(dispatcher.state, DispatchState.FAILED)
        self.assertFalse((await delegate(_request(url="http://[::1"))).ok)

    async def test_invalid_card_url(self):
        """A card advertising an unusable url ends in an error outcome."""
        agent = FakeAgent(
            card=card_document(streaming=True, url="http://[::1"),
            stream_results=streamed_task("13440"),
        )
        dispatcher = Dispatcher(_request(), transport=agent.transport())
        chunks = [chunk async for chunk in dispatcher.stream()]

        self.assertEqual(chunks, [])
        self.assertFalse(dispatcher.outcome.ok)
        self.assertEqual(agent.posts, [])

    async def test_unexpected_error_becomes_outcome(self):
        """Errors outside the delegation taxonomy still end in one outcome."""
        async def broken(request):
            raise KeyError("boom")

        dispatcher = Dispatcher(_request(), transport=httpx.MockTransport(broken))
        with self.assertLogs("a2a_delegate.dispatch", level="ERROR"):
            chunks = [chunk async for chunk in dispatcher.stream()]

        self.assertEqual(chunks, [])
        self.assertFalse(dispatcher.outcome.ok)
        self.assertEqual(dispatcher.transitions[-1], DispatchState.FAILED)

    async def test_completed_task_snapshot(self):
        """A final task snapshot does not repeat text already streamed."""
        results = streamed_task("13440")
        results[-1] = {
            "kind": "task",
            "id": "task-1",
            "contextId": "ctx-1",
            "status": {"state": "completed"},
            "artifacts": [{"artifactId": "a-1", "parts": [{"kind": "text", "text": "13440"}]}],
        }
        agent = FakeAgent(stream_results=results)
        dispatcher = Dispatcher(_request(), transport=agent.transport())
        chunks = [chunk async for chunk in dispatcher.stream()]

        self.assertEqual(chunks, ["13440"])
        self.assertEqual(dispatcher.outcome, DelegationOutcome.success("13440"))
        self.assertEqual(await delegate(_request(), transport=agent.transport()), dispatcher.outcome)

    async def test_timeout(self):
        """Should end the stream once the deadline passes."""
        agent = FakeAgent(delay=5.0, stream_results=streamed_task("13440"))
        dispatcher = Dispatcher(_request(), timeout=0.2, transport=agent.transport())

        started = time.monotonic()
        chunks = [chunk async for chunk in dispatcher.stream()]
        elapsed = time.monotonic() - started

        self.assertEqual(chunks, [])
        self.assertFalse(dispatcher.outcome.ok)
        self.assertIn("too long", dispatcher.outcome.content)
        self.assertLess(elapsed, 2.0)


class TestDelegateSync(unittest.TestCase):
    """Tests for the blocking entry point."""

    def test_delegate_sync(self):
        """Should run the delegation to completion from sync code."""
        outcome = delegate_sync(_request(), transport=_calculator_transport())
        self.assertEqual(outcome, DelegationOutcome.success("13440"))

    def test_delegate_sync_error(self):
        """Should return an error outcome rather than raise."""
        outcome = delegate_sync(_request(url=None))
        self.assertEqual(outcome.status, DelegationOutcome.ERROR)


if __name__ == "__main__":
    unittest.main()
