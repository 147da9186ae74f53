import json
import random
import threading
from unittest.mock import Mock

import pytest

from askline.client import ChatClient
from askline.errors import NotAuthenticated, RequestFailed, StreamError, TransportError
from askline.models import Session
from askline.sessions import SessionManager, SessionStore
from askline.transport import TransportResponse

from fakes import chunks_doc, sse, stream_ok


SESSION = Session(cookies="a=1; b=2", user_agent="UA/1.0", session_id="sess-1")


@pytest.fixture
def client(config, transport, storage, bus):
    sessions = SessionManager(transport, SessionStore(storage), config, bus)
    return ChatClient(sessions, transport, config)


class TestChatClient:
    def test_requires_session_before_network(self, client, transport):
        with pytest.raises(NotAuthenticated):
            client.send_message("hi")
        assert transport.requests == []

    def test_streams_tokens_and_returns_response(self, client, transport):
        transport.queue(
            stream_ok(
                sse(chunks_doc("He"), event="message"),
                sse(chunks_doc("llo", thread_url_slug="hi-abc", read_write_token="rw")),
            )
        )
        tokens = []
        response = client.send_message("hi", SESSION, tokens.append)

        assert tokens == ["He", "llo"]
        assert response.answer == "Hello"
        assert response.thread_url_slug == "hi-abc"
        assert response.read_write_token == "rw"

    def test_request_shape(self, client, transport, config):
        transport.queue(stream_ok())
        client.send_message("what is x?", SESSION)

        sent = transport.requests[0]
        assert sent["url"] == "https://ask.example.com/rest/sse/perplexity_ask"
        assert sent["method"] == "POST"
        assert sent["stream"] is True
        assert sent["headers"]["Cookie"] == "a=1; b=2"
        assert sent["headers"]["User-Agent"] == "UA/1.0"
        assert sent["headers"]["Accept"] == "text/event-stream"

        payload = json.loads(sent["body"])
        assert payload["messages"] == [{"role": "user", "content": "what is x?", "priority": 0}]
        assert payload["frontend_session_id"] == "sess-1"
        assert payload["model"] == config.ask.model
        assert payload["use_search_engine"] is True
        assert payload["visitor_id"] == sent["headers"]["X-Request-ID"]

    def test_uses_manager_session_by_default(self, client, transport):
        client.sessions._session = SESSION
        transport.queue(stream_ok(sse(chunks_doc("ok"))))
        assert client.send_message("hi").answer == "ok"

    def test_non_200_raises_request_failed(self, client, transport):
        on_close = Mock()
        transport.queue(TransportResponse(status=429, on_close=on_close))
        with pytest.raises(RequestFailed) as exc:
            client.send_message("hi", SESSION)
        assert exc.value.status == 429
        on_close.assert_called_once()

    def test_transport_error_propagates(self, client, transport):
        transport.queue(TransportError("connection reset"))
        with pytest.raises(TransportError):
            client.send_message("hi", SESSION)

    def test_stream_fault_raises_stream_error(self, client, transport):
        def broken():
            yield sse(chunks_doc("par"))
            raise OSError("socket closed")

        on_close = Mock()
        transport.queue(TransportResponse(status=200, stream=broken(), on_close=on_close))
        tokens = []
        with pytest.raises(StreamError):
            client.send_message("hi", SESSION, tokens.append)
        assert tokens == ["par"]
        on_close.assert_called_once()

    def test_jitter_delay_applied(self, transport, storage, bus, config):
        config.jitter_min_seconds = 0.5
        config.jitter_max_seconds = 1.5
        sleep = Mock()
        sessions = SessionManager(transport, SessionStore(storage), config, bus)
        client = ChatClient(sessions, transport, config, sleep=sleep, rng=random.Random(7))
        transport.queue(stream_ok())

        client.send_message("hi", SESSION)

        sleep.assert_called_once()
        delay = sleep.call_args[0][0]
        assert 0.5 <= delay <= 1.5

    def test_zero_jitter_skips_sleep(self, transport, storage, bus, config):
        sleep = Mock()
        sessions = SessionManager(transport, SessionStore(storage), config, bus)
        client = ChatClient(sessions, transport, config, sleep=sleep)
        transport.queue(stream_ok())
        client.send_message("hi", SESSION)
        sleep.assert_not_called()

    def test_cancel_without_request_is_noop(self, client):
        assert client.cancel() is False


class _BlockingStream:
    """Yields one chunk, then blocks until closed."""

    def __init__(self, first: bytes):
        self.first = first
        self.started = threading.Event()
        self.closed = threading.Event()

    def __iter__(self):
        yield self.first
        self.started.set()
        if not self.closed.wait(timeout=5):
            raise AssertionError("stream was never closed")
        raise OSError("stream closed")


def test_cancel_unblocks_pending_read(client, transport):
    stream = _BlockingStream(sse(chunks_doc("first")))
    transport.queue(TransportResponse(status=200, stream=stream, on_close=stream.closed.set))

    errors = []
    tokens = []

    def run():
        try:
            client.send_message("hi", SESSION, tokens.append)
        except StreamError as e:
            errors.append(e)

    worker = threading.Thread(target=run)
    worker.start()
    assert stream.started.wait(timeout=5)
    assert client.cancel() is True
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert tokens == ["first"]
    assert len(errors) == 1


class _GatedStream:
    """Yields one chunk, waits for release, then yields the rest."""

    def __init__(self, first: bytes, rest: bytes):
        self.first = first
        self.rest = rest
        self.started = threading.Event()
        self.release = threading.Event()

    def __iter__(self):
        yield self.first
        self.started.set()
        if not self.release.wait(timeout=5):
            raise AssertionError("stream was never released")
        yield self.rest


def test_cancel_leaves_parallel_exchange_intact(client, transport):
    slow = _GatedStream(sse(chunks_doc("Hel")), sse(chunks_doc("lo")))
    latest = _BlockingStream(sse(chunks_doc("other")))
    transport.queue(
        TransportResponse(status=200, stream=slow),
        TransportResponse(status=200, stream=latest, on_close=latest.closed.set),
    )

    results = {}

    def run(name):
        try:
            results[name] = client.send_message("hi", SESSION)
        except StreamError as e:
            results[name] = e

    first = threading.Thread(target=run, args=("first",))
    first.start()
    assert slow.started.wait(timeout=5)
    second = threading.Thread(target=run, args=("second",))
    second.start()
    assert latest.started.wait(timeout=5)

    assert client.cancel() is True
    second.join(timeout=5)
    slow.release.set()
    first.join(timeout=5)

    assert not first.is_alive() and not second.is_alive()
    assert isinstance(results["second"], StreamError)
    assert results["first"].answer == "Hello"
    assert client.cancel() is False
