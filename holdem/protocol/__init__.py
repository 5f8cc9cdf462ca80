"""Protocol module for WebSocket message handling."""
from .messages import (
    ClientMessage,
    ServerMessage,
    IdentifyMessage,
    ActionMessage,
    GameStateMessage,
    parse_client_message,
)
from .handlers import MessageHandler, ClientSession

__all__ = [
    "ClientMessage",
    "ServerMessage",
    "IdentifyMessage",
    "ActionMessage",
    "GameStateMessage",
    "parse_client_message",
    "MessageHandler",
    "ClientSession",
]
