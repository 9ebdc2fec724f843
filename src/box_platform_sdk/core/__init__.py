"""Core components for the Box Platform SDK.

Request execution, token grant building and error classification shared
by the sessions, the token manager and the clients.
"""

from __future__ import annotations

from .auth_builder import AuthorizationBuilder
from .errors import ErrorFactory
from .http_executor import RequestExecutor
from .single_flight import SingleFlight
from .token_ops import TokenOperations

__all__ = [
    "AuthorizationBuilder",
    "ErrorFactory",
    "RequestExecutor",
    "SingleFlight",
    "TokenOperations",
]
