class AsklineError(Exception):
    pass


class ConfigError(AsklineError):
    pass


class TransportInitError(AsklineError):
    pass


class TransportError(AsklineError):
    pass


class AuthenticationFailure(AsklineError):
    pass


class NotAuthenticated(AsklineError):
    def __init__(self, message: str = "No active session. Authenticate first."):
        super().__init__(message)


class RequestFailed(AsklineError):
    def __init__(self, status: int, message: str | None = None):
        self.status = status
        super().__init__(message or f"HTTP {status}: request failed")


class StreamError(AsklineError):
    pass


class ConversationNotFound(AsklineError):
    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")
