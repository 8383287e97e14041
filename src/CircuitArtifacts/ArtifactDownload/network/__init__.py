"""Network layer: retry policy, HTTP client factory, and retrieval strategies.

Public API:
    - Transport: strategy interface (``fetch``, ``init``, ``shutdown``)
    - GatewayTransport / TrustlessGatewayTransport / NodeTransport
    - create_transport: build the strategy named in settings
    - RetryPolicy / run_with_retry: exponential backoff around fetches
"""

from .base import Transport
from .client import create_http_client
from .factory import create_transport
from .gateway import GatewayTransport
from .node import NodeTransport
from .retry import RetryPolicy, is_retryable_error, run_with_retry
from .trustless import TrustlessGatewayTransport

__all__ = [
    "Transport",
    "GatewayTransport",
    "TrustlessGatewayTransport",
    "NodeTransport",
    "create_transport",
    "create_http_client",
    "RetryPolicy",
    "is_retryable_error",
    "run_with_retry",
]
