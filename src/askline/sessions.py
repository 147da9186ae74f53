import json
import logging
import threading
from enum import Enum

import httpx
from pydantic import ValidationError

from askline.config import ClientConfig
from askline.errors import AsklineError, AuthenticationFailure
from askline.models import Session
from askline.storage import KeyValueStorage, StorageScope, StorageTarget
from askline.transport import Transport
from common.events import AuthenticationChanged, EventBus
from common.ids import generate_id
from common.jsonio import loads_or_none

logger = logging.getLogger(__name__)

SESSION_KEY = "askline.session"

HANDSHAKE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en-GB;q=0.9,en;q=0.8",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
}


class SessionStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


def cookie_header(set_cookie_values: list[str]) -> str:
    pairs = []
    for raw in set_cookie_values:
        pair = raw.split(";", 1)[0].strip()
        if pair and "=" in pair:
            pairs.append(pair)
    return "; ".join(pairs)


class SessionStore:
    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = SESSION_KEY,
        scope: StorageScope = StorageScope.APPLICATION,
    ):
        self.storage = storage
        self.key = key
        self.scope = scope

    def load(self) -> Session | None:
        try:
            raw = self.storage.get(self.key, self.scope)
        except OSError as e:
            logger.warning(f"Could not read stored session: {e}")
            return None
        data = loads_or_none(raw)
        if data is None:
            if raw:
                logger.warning("Stored session is not valid JSON, ignoring it")
            return None
        try:
            return Session.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Stored session is malformed, ignoring it: {e}")
            return None

    def save(self, session: Session) -> None:
        try:
            self.storage.store(
                self.key,
                json.dumps(session.to_json()),
                self.scope,
                StorageTarget.MACHINE,
            )
            logger.info("Session saved")
        except OSError as e:
            logger.warning(f"Failed to save session: {e}")

    def clear(self) -> None:
        try:
            self.storage.remove(self.key, self.scope)
        except OSError as e:
            logger.warning(f"Failed to clear stored session: {e}")


class SessionManager:
    """Owns the session lifecycle against the service's entry endpoint.

    ``create_session`` never raises: every failed handshake is reported as
    ``False`` and leaves the manager unauthenticated. Each settled transition
    is published as an :class:`AuthenticationChanged` event.
    """

    def __init__(
        self,
        transport: Transport | None,
        store: SessionStore,
        config: ClientConfig | None = None,
        bus: EventBus | None = None,
    ):
        self.transport = transport
        self.store = store
        self.config = config or ClientConfig()
        self.bus = bus if bus is not None else EventBus()
        self._session: Session | None = None
        self._status = SessionStatus.UNAUTHENTICATED
        self._initialized = False
        self._closed = False
        self._lock = threading.Lock()

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_authenticated(self) -> bool:
        return self._status == SessionStatus.AUTHENTICATED and self._session is not None

    @property
    def session(self) -> Session | None:
        return self._session

    def _settle(self, status: SessionStatus) -> None:
        self._status = status
        self.bus.emit(AuthenticationChanged(is_authenticated=self.is_authenticated))

    def initialize(self) -> None:
        with self._lock:
            if self._initialized:
                return
            if self.transport is not None:
                self.transport.initialize()
            self._initialized = True
        logger.info("Session manager initialized")

    def load_session(self) -> bool:
        session = self.store.load()
        if session is None:
            logger.info("No stored session found")
            self._session = None
            self._settle(SessionStatus.UNAUTHENTICATED)
            return False
        self._session = session
        self._settle(SessionStatus.AUTHENTICATED)
        logger.info(f"Session {session.session_id} loaded")
        return True

    def create_session(self) -> bool:
        self._status = SessionStatus.AUTHENTICATING
        logger.info("Creating new session...")
        try:
            session = self._handshake()
        except (AsklineError, httpx.HTTPError, OSError) as e:
            logger.error(f"Failed to create session: {e}")
            self._session = None
            self._settle(SessionStatus.UNAUTHENTICATED)
            return False

        self._session = session
        self.store.save(session)
        self._settle(SessionStatus.AUTHENTICATED)
        logger.info(f"New session {session.session_id} created")
        return True

    def _handshake(self) -> Session:
        if self.transport is None:
            raise AuthenticationFailure("No transport configured")
        headers = dict(HANDSHAKE_HEADERS)
        headers["User-Agent"] = self.config.user_agent
        response = self.transport.request(self.config.entry_url, "GET", headers=headers)
        if response.status != 200:
            raise AuthenticationFailure(f"Handshake returned HTTP {response.status}")
        cookies = cookie_header(response.headers.get_list("set-cookie"))
        if not cookies:
            raise AuthenticationFailure("Handshake response carried no session cookies")
        return Session(
            cookies=cookies,
            user_agent=self.config.user_agent,
            session_id=generate_id(),
        )

    def invalidate(self) -> None:
        self._session = None
        self.store.clear()
        self._settle(SessionStatus.UNAUTHENTICATED)
        logger.info("Session invalidated")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            transport = self.transport
        if transport is not None:
            transport.close()
