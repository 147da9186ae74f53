from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from common.ids import generate_id

DEFAULT_TITLE = "New Conversation"
TITLE_ELLIPSIS = "..."


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _Stored(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Session(_Stored):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    cookies: str
    user_agent: str
    session_id: str


class Response(_Stored):
    success: bool = True
    answer: str = ""
    thread_url_slug: str = ""
    read_write_token: str = ""
    full_response_length: int = Field(default=0, alias="fullResponse")


class Message(_Stored):
    id: str = Field(default_factory=generate_id)
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    is_user: bool
    response: Response | None = None
    reply_to: str | None = None


class Conversation(_Stored):
    id: str = Field(default_factory=generate_id)
    title: str = DEFAULT_TITLE
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def append(self, message: Message) -> None:
        self.messages.append(message)
        now = utc_now()
        if now > self.updated_at:
            self.updated_at = now

    def apply_first_exchange_title(self, max_length: int = 50) -> bool:
        """Name the conversation after its opening question.

        Only fires when the conversation holds exactly two messages and still
        carries the default title, so it runs at most once.
        """
        if len(self.messages) != 2 or self.title != DEFAULT_TITLE:
            return False
        first = next((m for m in self.messages if m.is_user), None)
        if first is None:
            return False
        self.title = truncate_title(first.content, max_length)
        return True


def truncate_title(content: str, max_length: int = 50) -> str:
    if len(content) > max_length:
        return content[:max_length] + TITLE_ELLIPSIS
    return content
