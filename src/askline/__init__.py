from askline.config import AskConfig, ClientConfig
from askline.errors import (
    AsklineError,
    AuthenticationFailure,
    ConfigError,
    ConversationNotFound,
    NotAuthenticated,
    RequestFailed,
    StreamError,
    TransportError,
    TransportInitError,
)
from askline.models import Conversation, Message, Response, Session
from askline.service import ConversationService, build_service

__all__ = [
    "AskConfig",
    "ClientConfig",
    "AsklineError",
    "AuthenticationFailure",
    "ConfigError",
    "ConversationNotFound",
    "NotAuthenticated",
    "RequestFailed",
    "StreamError",
    "TransportError",
    "TransportInitError",
    "Conversation",
    "Message",
    "Response",
    "Session",
    "ConversationService",
    "build_service",
]
