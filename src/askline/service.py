import logging
import threading
from typing import Callable

from askline.client import ChatClient
from askline.config import ClientConfig
from askline.conversations import ConversationStore
from askline.errors import ConversationNotFound, NotAuthenticated
from askline.models import DEFAULT_TITLE, Conversation, Message
from askline.sessions import SessionManager, SessionStore
from askline.storage import JsonFileStorage, KeyValueStorage
from askline.transport import HttpxTransport, Transport
from common.events import EventBus, EventCallback, MessageCompleted, TokenReceived

logger = logging.getLogger(__name__)


class ConversationService:
    """Facade over sessions, the chat client and the conversation log.

    ``send_message`` returns the id of the user message it appended; token and
    completion events for that exchange carry the same id. Sends targeting the
    same conversation run one at a time.
    """

    def __init__(
        self,
        sessions: SessionManager,
        client: ChatClient,
        store: ConversationStore,
        bus: EventBus | None = None,
        config: ClientConfig | None = None,
    ):
        self.sessions = sessions
        self.client = client
        self.store = store
        self.bus = bus if bus is not None else sessions.bus
        self.config = config or ClientConfig()
        self._drafts: dict[str, Message] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._initialized = False

    @property
    def is_authenticated(self) -> bool:
        return self.sessions.is_authenticated

    def subscribe(
        self, callback: EventCallback, event_type: type | None = None
    ) -> Callable[[], None]:
        return self.bus.subscribe(callback, event_type)

    def initialize(self) -> None:
        try:
            self.sessions.initialize()
        except Exception as e:
            logger.error(f"Failed to initialize service: {e}")
            raise
        self.sessions.load_session()
        self._initialized = True
        logger.info("Service initialized")

    def authenticate(self) -> bool:
        if not self._initialized:
            self.initialize()
        success = self.sessions.create_session()
        if success:
            logger.info("Authentication successful")
        else:
            logger.error("Authentication failed")
        return success

    def logout(self) -> None:
        self.sessions.invalidate()

    def _lock_for(self, conversation_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(conversation_id)
            if lock is None:
                lock = self._locks[conversation_id] = threading.Lock()
            return lock

    def send_message(self, content: str, conversation_id: str | None = None) -> str:
        if not self.is_authenticated:
            raise NotAuthenticated("Not authenticated with the answer service")

        if conversation_id:
            conversation = self.store.get(conversation_id)
            if conversation is None:
                raise ConversationNotFound(conversation_id)
        else:
            conversation = self.create_conversation()

        with self._lock_for(conversation.id):
            return self._exchange(conversation, content)

    def _exchange(self, conversation: Conversation, content: str) -> str:
        user_message = Message(content=content, is_user=True)
        conversation.append(user_message)
        self.store.save()
        message_id = user_message.id

        draft = Message(content="", is_user=False, reply_to=message_id)
        self._drafts[message_id] = draft

        def on_token(token: str) -> None:
            draft.content += token
            self.bus.emit(TokenReceived(message_id=message_id, token=token))

        try:
            response = self.client.send_message(content, on_token=on_token)
        except Exception as e:
            logger.error(f"Failed to send message in conversation {conversation.id}: {e}")
            raise
        finally:
            self._drafts.pop(message_id, None)

        conversation.append(
            Message(
                id=draft.id,
                content=response.answer,
                is_user=False,
                response=response,
                reply_to=message_id,
            )
        )
        conversation.apply_first_exchange_title(self.config.title_max_length)
        self.store.save()
        self.bus.emit(MessageCompleted(message_id=message_id, response=response))
        return message_id

    def get_draft(self, message_id: str) -> Message | None:
        return self._drafts.get(message_id)

    def cancel(self) -> bool:
        return self.client.cancel()

    def get_conversations(self) -> list[Conversation]:
        return self.store.list_conversations()

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self.store.get(conversation_id)

    def create_conversation(self, title: str | None = None) -> Conversation:
        conversation = Conversation(title=title or DEFAULT_TITLE)
        self.store.put(conversation)
        logger.debug(f"Created conversation {conversation.id}")
        return conversation

    def delete_conversation(self, conversation_id: str) -> None:
        self.store.delete(conversation_id)
        with self._locks_guard:
            self._locks.pop(conversation_id, None)

    def clear_conversations(self) -> None:
        self.store.clear()
        with self._locks_guard:
            self._locks.clear()

    def close(self) -> None:
        self.client.cancel()
        self.sessions.close()


def build_service(
    config: ClientConfig | None = None,
    transport: Transport | None = None,
    storage: KeyValueStorage | None = None,
    bus: EventBus | None = None,
) -> ConversationService:
    config = config or ClientConfig.from_env()
    config.validate()
    bus = bus if bus is not None else EventBus()
    storage = storage or JsonFileStorage(config.data_dir)
    transport = transport or HttpxTransport(
        timeout=config.timeout_seconds, user_agent=config.user_agent
    )
    sessions = SessionManager(transport, SessionStore(storage), config, bus)
    client = ChatClient(sessions, transport, config)
    store = ConversationStore(storage)
    return ConversationService(sessions, client, store, bus, config)
