import json
import logging

from pydantic import ValidationError

from askline.models import Conversation
from askline.storage import KeyValueStorage, StorageScope, StorageTarget
from common.jsonio import loads_or_none

logger = logging.getLogger(__name__)

CONVERSATIONS_KEY = "askline.conversations"


class ConversationStore:
    """In-memory conversation map mirrored to storage as one JSON snapshot."""

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = CONVERSATIONS_KEY,
        scope: StorageScope = StorageScope.PROFILE,
    ):
        self.storage = storage
        self.key = key
        self.scope = scope
        self._conversations: dict[str, Conversation] = {}
        self.load()

    def load(self) -> None:
        self._conversations = {}
        try:
            raw = self.storage.get(self.key, self.scope)
        except OSError as e:
            logger.error(f"Failed to load conversations: {e}")
            return
        data = loads_or_none(raw)
        if data is None:
            if raw:
                logger.error("Stored conversations are not valid JSON, starting empty")
            return
        if not isinstance(data, list):
            logger.error("Stored conversations have an unexpected shape, starting empty")
            return
        for item in data:
            try:
                conversation = Conversation.model_validate(item)
            except ValidationError as e:
                logger.warning(f"Skipping malformed stored conversation: {e}")
                continue
            self._conversations[conversation.id] = conversation
        logger.debug(f"Loaded {len(self._conversations)} conversations")

    def save(self) -> None:
        snapshot = [c.to_json() for c in self._conversations.values()]
        try:
            self.storage.store(
                self.key,
                json.dumps(snapshot, ensure_ascii=False),
                self.scope,
                StorageTarget.USER,
            )
        except OSError as e:
            logger.error(f"Failed to save conversations: {e}")

    def get(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def put(self, conversation: Conversation) -> None:
        self._conversations[conversation.id] = conversation
        self.save()

    def delete(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)
        self.save()

    def clear(self) -> None:
        self._conversations.clear()
        self.save()

    def list_conversations(self) -> list[Conversation]:
        return sorted(
            self._conversations.values(),
            key=lambda c: c.updated_at,
            reverse=True,
        )

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)
