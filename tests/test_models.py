from datetime import timedelta

from askline.models import DEFAULT_TITLE, Conversation, Message, Response, truncate_title


class TestConversation:
    def test_append_never_moves_updated_at_backwards(self):
        conversation = Conversation()
        future = conversation.updated_at + timedelta(days=1)
        conversation.updated_at = future
        conversation.append(Message(content="q", is_user=True))
        assert conversation.updated_at == future

    def test_title_rule_needs_exactly_two_messages(self):
        conversation = Conversation()
        conversation.append(Message(content="only question", is_user=True))
        assert conversation.apply_first_exchange_title() is False
        assert conversation.title == DEFAULT_TITLE

        conversation.append(Message(content="answer", is_user=False, response=Response(answer="answer")))
        assert conversation.apply_first_exchange_title() is True
        assert conversation.title == "only question"

        conversation.append(Message(content="again", is_user=True))
        conversation.title = DEFAULT_TITLE
        assert conversation.apply_first_exchange_title() is False

    def test_truncate_title(self):
        assert truncate_title("a" * 50) == "a" * 50
        assert truncate_title("a" * 51) == "a" * 50 + "..."

    def test_response_serializes_camel_case_field_names(self):
        data = Response(answer="abc", full_response_length=3, thread_url_slug="s").to_json()
        assert data["fullResponse"] == 3
        assert data["threadUrlSlug"] == "s"
        assert Response.model_validate(data).full_response_length == 3
