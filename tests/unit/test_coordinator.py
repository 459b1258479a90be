"""Unit tests for the streaming-first, blocking-fallback client.

The server side is an ``httpx.MockTransport`` so each test controls
exactly what the two endpoints return.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Callable

import httpx
import pytest
import pytest_check as check

from askuni.models.schemas import Attachment
from askuni.streaming.codec import delta_frame, encode_frame_bytes, final_frame
from askuni.streaming.consumer import ConsumerState, StreamConsumer
from askuni.streaming.coordinator import ChatContext, FallbackCoordinator, PendingRequest
from tests.fakes import RecordingDisplay, byte_chunks

SSE = {"content-type": "text/event-stream"}


class FakeServer:
    """Routes requests to per-path handlers and records them."""

    def __init__(
        self,
        stream: Callable[[httpx.Request], httpx.Response],
        message: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        self._stream = stream
        self._message = message or (lambda request: httpx.Response(500))
        self.requests: list[httpx.Request] = []

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/message/stream":
            return self._stream(request)
        return self._message(request)


def ok_message(text: str, session_id: str) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(200, json={"ok": True, "message": text, "sessionId": session_id})


def coordinator_for(server: FakeServer) -> FallbackCoordinator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(server), base_url="http://test")
    return FallbackCoordinator(client=client)


async def failing_body(chunks: list[bytes]) -> AsyncIterator[bytes]:
    async for chunk in byte_chunks(*chunks, error=httpx.ReadError("connection reset")):
        yield chunk


class TestStreamingPath:
    """Tests for streams that were established."""

    async def test_stream_answer_used_directly(self) -> None:
        body = (delta_frame("The room ") + delta_frame("is B101.") + final_frame("The room is B101.", "S123")).encode()
        server = FakeServer(lambda request: httpx.Response(200, headers=SSE, content=body))
        context = ChatContext()

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(context.pending("What room is ITCS285 in?"), context)

        check.is_true(outcome.ok)
        check.is_false(outcome.via_fallback)
        check.equal(outcome.text, "The room is B101.")
        check.equal(context.session_id, "S123")
        check.equal(len(server.calls("/message")), 0)

    async def test_room_question_streamed(self) -> None:
        """Four deltas and a terminal frame render exactly the terminal text."""
        body = "".join(delta_frame(t) for t in ("The ", "room ", "is ", "B101.")) + final_frame(
            "The room is B101.", "S123"
        )
        server = FakeServer(lambda request: httpx.Response(200, headers=SSE, content=body.encode()))
        display = RecordingDisplay()
        consumer = StreamConsumer(display=display, render=lambda text: text)
        context = ChatContext()

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(context.pending("What room is ITCS285 in?"), context, consumer)

        check.equal(json.loads(server.calls("/message/stream")[0].content)["sessionId"], None)
        check.equal(display.partials[-1], "The room is B101.")
        check.equal(outcome.text, "The room is B101.")
        check.equal(consumer.rendered, "The room is B101.")
        check.equal(context.session_id, "S123")

    async def test_grounding_message_overrides_preview(self) -> None:
        """A plausible streamed preview is replaced by the terminal fallback text."""
        fixed = "I don't have this information in my knowledge base."
        body = delta_frame("ITCS285 meets in ") + delta_frame("room S40-021.") + final_frame(fixed, "S1")
        server = FakeServer(lambda request: httpx.Response(200, headers=SSE, content=body.encode()))
        display = RecordingDisplay()
        context = ChatContext()

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(
                context.pending("What room is ITCS285 in?"), context, StreamConsumer(display=display)
            )

        check.equal(outcome.text, fixed)
        check.equal(display.finals, [fixed])
        check.equal(display.partials[-1], "ITCS285 meets in room S40-021.")

    async def test_request_body_and_headers(self) -> None:
        server = FakeServer(
            lambda request: httpx.Response(200, headers=SSE, content=final_frame("ok", "S1").encode())
        )
        context = ChatContext(session_id="S1", token="tok")

        async with coordinator_for(server) as coordinator:
            await coordinator.send(context.pending("  hello  "), context)

        request = server.calls("/message/stream")[0]
        check.equal(
            json.loads(request.content),
            {"message": "hello", "attachments": [], "sessionId": "S1"},
        )
        check.equal(request.headers["authorization"], "Bearer tok")
        check.equal(request.headers["accept"], "text/event-stream")

    async def test_no_fallback_after_partial_stream(self) -> None:
        """One delta then a closed connection aborts without touching /message."""
        server = FakeServer(
            lambda request: httpx.Response(200, headers=SSE, content=delta_frame("The room").encode()),
            ok_message("should not be used", "S9"),
        )
        display = RecordingDisplay()
        context = ChatContext(session_id="S1")

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(
                context.pending("hi"), context, StreamConsumer(display=display, session_id="S1")
            )

        check.equal(outcome.state, ConsumerState.ABORTED)
        check.equal(outcome.text, "The room")
        check.is_false(outcome.via_fallback)
        check.equal(len(server.calls("/message")), 0)
        check.equal(display.partials, ["The room"])
        check.equal(context.session_id, "S1")

    async def test_no_fallback_after_read_error(self) -> None:
        server = FakeServer(
            lambda request: httpx.Response(
                200, headers=SSE, content=failing_body([delta_frame("par").encode()])
            ),
            ok_message("should not be used", "S9"),
        )
        context = ChatContext()

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(context.pending("hi"), context)

        assert outcome.state is ConsumerState.ABORTED
        assert outcome.text == "par"
        assert server.calls("/message") == []


class TestFallback:
    """Tests for streams that could not be established."""

    async def test_room_question_answered_by_fallback(self) -> None:
        """HTTP 500 on the stream: exactly one blocking call, zero deltas shown."""
        server = FakeServer(
            lambda request: httpx.Response(500),
            ok_message("The room is B101.", "S123"),
        )
        display = RecordingDisplay()
        consumer = StreamConsumer(display=display)
        context = ChatContext()

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(context.pending("What room is ITCS285 in?"), context, consumer)

        check.is_true(outcome.ok)
        check.is_true(outcome.via_fallback)
        check.equal(outcome.text, "The room is B101.")
        check.equal(outcome.session_id, "S123")
        check.equal(context.session_id, "S123")
        check.equal(len(server.calls("/message")), 1)
        check.equal(consumer.deltas_processed, 0)
        check.equal(display.partials, [])
        check.equal(display.finals, ["The room is B101."])

    async def test_fallback_repeats_same_body(self) -> None:
        server = FakeServer(lambda request: httpx.Response(503), ok_message("x", "S1"))
        context = ChatContext(attachments=[Attachment(filename="a.txt", text="A")])

        async with coordinator_for(server) as coordinator:
            await coordinator.send(context.pending("hi"), context)

        stream_body = json.loads(server.calls("/message/stream")[0].content)
        message_body = json.loads(server.calls("/message")[0].content)
        assert stream_body == message_body

    async def test_connection_refused_falls_back(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        server = FakeServer(refuse, ok_message("answer", "S2"))

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(PendingRequest("hi"), ChatContext())

        assert outcome.via_fallback
        assert outcome.text == "answer"

    async def test_wrong_content_type_falls_back(self) -> None:
        server = FakeServer(
            lambda request: httpx.Response(200, json={"ok": True}),
            ok_message("answer", "S2"),
        )

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(PendingRequest("hi"), ChatContext())

        assert outcome.via_fallback
        assert len(server.calls("/message")) == 1

    async def test_empty_stream_body_falls_back(self) -> None:
        """A stream that closes before its first byte is treated as not established."""
        server = FakeServer(
            lambda request: httpx.Response(200, headers=SSE, content=b""),
            ok_message("answer", "S2"),
        )

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(PendingRequest("hi"), ChatContext())

        assert outcome.via_fallback
        assert outcome.text == "answer"

    async def test_fallback_error_aborts(self) -> None:
        server = FakeServer(
            lambda request: httpx.Response(500),
            lambda request: httpx.Response(504, json={"ok": False, "error": "Assistant timeout"}),
        )
        context = ChatContext(session_id="S1", attachments=[Attachment(filename="a.txt")])

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(context.pending("hi"), context)

        check.equal(outcome.state, ConsumerState.ABORTED)
        check.equal(outcome.error, "Assistant timeout")
        check.is_true(outcome.via_fallback)
        check.equal(context.session_id, "S1")
        check.equal(len(context.attachments), 1)

    async def test_fallback_non_json_error(self) -> None:
        server = FakeServer(
            lambda request: httpx.Response(500),
            lambda request: httpx.Response(502, text="Bad Gateway"),
        )

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(PendingRequest("hi"), ChatContext())

        assert outcome.error == "HTTP 502"

    async def test_rejected_token_retried_as_guest(self) -> None:
        def message(request: httpx.Request) -> httpx.Response:
            if "authorization" in request.headers:
                return httpx.Response(401, json={"detail": "Invalid token"})
            return httpx.Response(200, json={"ok": True, "message": "guest answer", "sessionId": "S7"})

        server = FakeServer(lambda request: httpx.Response(500), message)
        context = ChatContext(token="expired")

        async with coordinator_for(server) as coordinator:
            outcome = await coordinator.send(context.pending("hi"), context)

        check.is_true(outcome.ok)
        check.equal(outcome.text, "guest answer")
        check.is_none(context.token)
        check.equal(len(server.calls("/message")), 2)


class TestChatContext:
    """Tests for conversation state updates."""

    async def test_sent_attachments_cleared_on_success(self) -> None:
        body = encode_frame_bytes("final", {"text": "Summary", "sessionId": "S3"})
        server = FakeServer(lambda request: httpx.Response(200, headers=SSE, content=body))
        context = ChatContext(attachments=[Attachment(filename="syllabus.pdf", text="...")])

        async with coordinator_for(server) as coordinator:
            await coordinator.send(context.pending("Summarise"), context)

        assert context.attachments == []
        assert context.session_id == "S3"

    def test_pending_snapshots_attachments(self) -> None:
        context = ChatContext(attachments=[Attachment(filename="a.txt")])

        request = context.pending("hi")
        context.attachments.append(Attachment(filename="b.txt"))

        assert [a.filename for a in request.attachments] == ["a.txt"]

    def test_reset(self) -> None:
        context = ChatContext(session_id="S1", token="tok", attachments=[Attachment()])

        context.reset()

        assert context.session_id is None
        assert context.attachments == []
        assert context.token == "tok"

    @pytest.mark.parametrize(("token", "expected"), [(None, {}), ("abc", {"Authorization": "Bearer abc"})])
    def test_headers(self, token: str | None, expected: dict[str, str]) -> None:
        assert ChatContext(token=token).headers() == expected


class TestBusy:
    async def test_not_busy_after_send(self) -> None:
        server = FakeServer(
            lambda request: httpx.Response(200, headers=SSE, content=final_frame("x", "S1").encode())
        )

        async with coordinator_for(server) as coordinator:
            await coordinator.send(PendingRequest("hi"), ChatContext())

            assert not coordinator.busy


class TestCancel:
    async def test_cancel_mid_stream_closes_without_fallback(self) -> None:
        first_delta_read = asyncio.Event()
        body_closed = asyncio.Event()

        async def paused_body() -> AsyncIterator[bytes]:
            try:
                yield delta_frame("a").encode()
                await asyncio.Event().wait()
            finally:
                body_closed.set()

        server = FakeServer(
            lambda request: httpx.Response(200, headers=SSE, content=paused_body()),
            ok_message("should not be used", "S9"),
        )
        display = RecordingDisplay()
        original_show_partial = display.show_partial

        def show_partial(text: str) -> None:
            original_show_partial(text)
            first_delta_read.set()

        display.show_partial = show_partial
        consumer = StreamConsumer(display=display, session_id="S1")
        context = ChatContext(session_id="S1")

        async with coordinator_for(server) as coordinator:
            task = asyncio.create_task(coordinator.send(context.pending("hi"), context, consumer))
            await asyncio.wait_for(first_delta_read.wait(), timeout=2.0)

            coordinator.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

            check.is_false(coordinator.busy)

        check.equal(consumer.state, ConsumerState.CANCELLED)
        check.equal(display.partials, ["a"])
        check.equal(display.finals, [])
        check.equal(len(server.calls("/message")), 0)
        check.is_true(body_closed.is_set())
