import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Protocol

import httpx

from askline.errors import TransportError, TransportInitError

logger = logging.getLogger(__name__)


@dataclass
class TransportResponse:
    """Result of a transport request.

    Buffered requests carry ``body``. Streamed requests carry ``stream``, an
    iterable of raw byte chunks that stays live until ``close()``.
    """

    status: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""
    stream: Iterable[bytes] | None = None
    on_close: Callable[[], None] | None = None
    _closed: bool = field(default=False, init=False, repr=False)

    @property
    def closed(self) -> bool:
        return self._closed

    def iter_bytes(self) -> Iterator[bytes]:
        if self.stream is None:
            if self.body:
                yield self.body
            return
        yield from self.stream

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.on_close is not None:
            self.on_close()


class Transport(Protocol):
    def initialize(self) -> None: ...

    def request(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: bytes | str | None = None,
        stream: bool = False,
    ) -> TransportResponse: ...

    def close(self) -> None: ...


class HttpxTransport:
    def __init__(
        self,
        timeout: float = 120.0,
        user_agent: str | None = None,
        client_factory: Callable[..., httpx.Client] = httpx.Client,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self._client_factory = client_factory
        self._client: httpx.Client | None = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self.initialize()
        return self._client

    def initialize(self) -> None:
        with self._lock:
            if self._client is not None:
                return
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            try:
                self._client = self._client_factory(
                    timeout=self.timeout,
                    headers=headers,
                    follow_redirects=False,
                )
            except Exception as e:
                raise TransportInitError(f"Could not create HTTP client: {e}") from e
            logger.debug(f"HTTP client ready (timeout={self.timeout}s)")

    def request(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: bytes | str | None = None,
        stream: bool = False,
    ) -> TransportResponse:
        client = self.client
        try:
            if not stream:
                resp = client.request(method, url, headers=headers, content=body)
                return TransportResponse(
                    status=resp.status_code,
                    headers=resp.headers,
                    body=resp.content,
                )
            req = client.build_request(method, url, headers=headers, content=body)
            resp = client.send(req, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        return TransportResponse(
            status=resp.status_code,
            headers=resp.headers,
            stream=resp.iter_bytes(),
            on_close=resp.close,
        )

    def close(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            client.close()
            logger.debug("HTTP client closed")
