import json
import logging
import random
import threading
import time
from typing import Callable

from askline.config import ClientConfig
from askline.errors import NotAuthenticated, RequestFailed, StreamError
from askline.models import Response, Session
from askline.sessions import SessionManager
from askline.stream import StreamParser, TokenCallback, parse_stream
from askline.transport import Transport, TransportResponse
from common.ids import generate_request_id

logger = logging.getLogger(__name__)

ASK_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "text/event-stream",
    "Accept-Encoding": "identity",
    "Accept-Language": "en-US,en-GB;q=0.9,en;q=0.8",
    "Prefer": "safe",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
    "X-Perplexity-Request-Reason": "perplexity-query-state-provider",
}


class ChatClient:
    """Runs one ask exchange: payload, streamed request, parsed answer.

    The client never touches conversation state. ``cancel()`` may be called
    from another thread to abort the most recent exchange still in flight;
    other exchanges running in parallel are left alone.

    Cancelling closes the underlying HTTP response. A reader blocked inside a
    socket read is not always woken by that close, so on some platforms it
    only sees the cancellation once the next chunk arrives or the read
    timeout (``timeout_seconds``) expires.
    """

    def __init__(
        self,
        sessions: SessionManager,
        transport: Transport,
        config: ClientConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self.sessions = sessions
        self.transport = transport
        self.config = config or ClientConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._in_flight: list[TransportResponse] = []
        self._lock = threading.Lock()

    def build_payload(self, content: str, session: Session, request_id: str) -> dict:
        ask = self.config.ask
        return {
            "version": ask.version,
            "source": ask.source,
            "model": ask.model,
            "messages": [{"role": "user", "content": content, "priority": 0}],
            "use_search_engine": ask.use_search_engine,
            "visitor_id": request_id,
            "frontend_session_id": session.session_id,
            "prompt_source": ask.prompt_source,
            "query_source": ask.query_source,
        }

    def build_headers(self, session: Session, request_id: str) -> dict[str, str]:
        headers = dict(ASK_HEADERS)
        base = self.config.base_url.rstrip("/")
        headers["Origin"] = base
        headers["Referer"] = base + "/"
        headers["User-Agent"] = session.user_agent
        headers["Cookie"] = session.cookies
        headers["X-Request-ID"] = request_id
        return headers

    def jitter_delay(self) -> float:
        low = self.config.jitter_min_seconds
        high = self.config.jitter_max_seconds
        if high <= 0:
            return 0.0
        return self._rng.uniform(low, high)

    def send_message(
        self,
        content: str,
        session: Session | None = None,
        on_token: TokenCallback | None = None,
    ) -> Response:
        session = session or self.sessions.session
        if session is None:
            raise NotAuthenticated()

        request_id = generate_request_id()
        payload = self.build_payload(content, session, request_id)

        delay = self.jitter_delay()
        if delay > 0:
            self._sleep(delay)

        logger.debug(f"Sending ask request {request_id}")
        response = self.transport.request(
            self.config.ask_url,
            "POST",
            headers=self.build_headers(session, request_id),
            body=json.dumps(payload),
            stream=True,
        )
        logger.debug(f"Ask request {request_id} returned HTTP {response.status}")
        if response.status != 200:
            response.close()
            raise RequestFailed(response.status)

        with self._lock:
            self._in_flight.append(response)
        try:
            result = parse_stream(response.iter_bytes(), on_token, StreamParser())
            # only cancel() closes a response before we do
            if response.closed:
                raise StreamError("Stream cancelled")
        finally:
            with self._lock:
                self._in_flight.remove(response)
            response.close()

        logger.info(f"Answer complete ({result.full_response_length} chars)")
        return result

    def cancel(self) -> bool:
        with self._lock:
            if not self._in_flight:
                return False
            active = self._in_flight[-1]
        logger.info("Cancelling in-flight ask request")
        active.close()
        return True
