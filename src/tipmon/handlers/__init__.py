from .base import Handler
from .dispatch import Dispatcher, FanoutHandler
from .email import EmailHandler
from .formatter import format_item_text
from .log import LogHandler
from .webhook import WebhookHandler

__all__ = [
    "Dispatcher",
    "EmailHandler",
    "FanoutHandler",
    "Handler",
    "LogHandler",
    "WebhookHandler",
    "format_item_text",
]
