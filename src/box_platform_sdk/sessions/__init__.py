"""Session variants: one per token acquisition strategy."""

from .app_auth import AppAuthSession
from .base import Session, coerce_token_info
from .basic import BasicSession
from .ccg import CCGSession
from .persistent import PersistentSession

__all__ = [
    "AppAuthSession",
    "BasicSession",
    "CCGSession",
    "PersistentSession",
    "Session",
    "coerce_token_info",
]
