"""Box Platform Python SDK."""

from .batch import BatchExecutor
from .client import BoxClient
from .config import (
    AnalyticsClient,
    AppAuthConfig,
    BoxConfig,
    EventsConfig,
    RetryConfig,
    TelemetryConfig,
)
from .errors import (
    AuthExpiredError,
    BoxSDKError,
    ErrorCode,
    InvalidConfigError,
    NetworkError,
    RateLimitError,
    ResponseError,
    RetriesExhaustedError,
    ServerError,
    TimeoutError,
    UnexpectedResponseError,
)
from .events import EnterpriseEventStream, EventStream, EventStreamState
from .models import (
    ActorParams,
    APIResponse,
    EnterpriseStreamState,
    RetryOptions,
    SharedLinkParams,
    TokenInfo,
    TokenRequestOptions,
)
from .sdk import BoxSDK
from .sessions import AppAuthSession, BasicSession, CCGSession, PersistentSession, Session
from .token_manager import TokenManager
from .token_store import MemoryTokenStore, TokenStore
from .webhooks import WebhookSignatureValidator, validate_message

__all__ = [
    "APIResponse",
    "ActorParams",
    "AnalyticsClient",
    "AppAuthConfig",
    "AppAuthSession",
    "AuthExpiredError",
    "BasicSession",
    "BatchExecutor",
    "BoxClient",
    "BoxConfig",
    "BoxSDK",
    "BoxSDKError",
    "CCGSession",
    "EnterpriseEventStream",
    "EnterpriseStreamState",
    "ErrorCode",
    "EventStream",
    "EventStreamState",
    "EventsConfig",
    "InvalidConfigError",
    "MemoryTokenStore",
    "NetworkError",
    "PersistentSession",
    "RateLimitError",
    "ResponseError",
    "RetriesExhaustedError",
    "RetryConfig",
    "RetryOptions",
    "ServerError",
    "Session",
    "SharedLinkParams",
    "TelemetryConfig",
    "TimeoutError",
    "TokenInfo",
    "TokenManager",
    "TokenRequestOptions",
    "TokenStore",
    "UnexpectedResponseError",
    "WebhookSignatureValidator",
    "validate_message",
]

__version__ = "0.1.0"
