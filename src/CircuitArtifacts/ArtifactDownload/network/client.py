# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.network.client",
#   "purpose": "HTTPX client factory for artifact transports.",
#   "sections": [
#     {
#       "id": "create-ssl-context",
#       "name": "create_ssl_context",
#       "anchor": "function-create-ssl-context",
#       "kind": "function"
#     },
#     {
#       "id": "create-http-client",
#       "name": "create_http_client",
#       "anchor": "function-create-http-client",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""HTTPX client factory for artifact transports.

Every :class:`~CircuitArtifacts.ArtifactDownload.network.base.Transport` owns
exactly one ``httpx.Client``, created lazily on first use through this factory
and closed by the transport's ``shutdown()``. There is no process-wide client:
two downloaders never share connection state.

Example:
    >>> client = create_http_client()
    >>> client.close()
"""

from __future__ import annotations

import logging
import ssl
from typing import TYPE_CHECKING, Optional

import certifi
import httpx

from .policy import (
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_POOL_TIMEOUT_S,
    DEFAULT_READ_TIMEOUT_S,
    DEFAULT_USER_AGENT,
    DEFAULT_WRITE_TIMEOUT_S,
    KEEPALIVE_EXPIRY,
    MAX_CONNECTIONS,
    MAX_KEEPALIVE_CONNECTIONS,
)

if TYPE_CHECKING:  # pragma: no cover
    from ..settings import TransportSettings

logger = logging.getLogger(__name__)


def create_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Create an SSL context backed by the certifi bundle.

    Args:
        verify: When false, certificate and hostname checks are disabled
            (local mirrors with self-signed certificates only).
    """
    if not verify:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        logger.warning("TLS verification DISABLED for artifact transport")
        return ctx

    ctx = ssl.create_default_context(cafile=certifi.where())
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


def create_http_client(
    settings: Optional["TransportSettings"] = None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Create an HTTPX client configured from ``settings``.

    Args:
        settings: Timeouts, TLS, and HTTP/2 preferences; package defaults
            apply when omitted.
        transport: Optional low-level transport (``httpx.MockTransport`` in tests).

    Returns:
        A new ``httpx.Client``; the caller owns and must close it.
    """

    if settings is not None:
        timeout = httpx.Timeout(
            connect=settings.connect_timeout_s,
            read=settings.read_timeout_s,
            write=settings.write_timeout_s,
            pool=settings.pool_timeout_s,
        )
        verify = settings.verify_tls
        http2 = settings.http2
        user_agent = settings.user_agent
    else:
        timeout = httpx.Timeout(
            connect=DEFAULT_CONNECT_TIMEOUT_S,
            read=DEFAULT_READ_TIMEOUT_S,
            write=DEFAULT_WRITE_TIMEOUT_S,
            pool=DEFAULT_POOL_TIMEOUT_S,
        )
        verify = True
        http2 = True
        user_agent = DEFAULT_USER_AGENT

    ssl_ctx = create_ssl_context(verify)
    client = httpx.Client(
        transport=transport,
        timeout=timeout,
        limits=httpx.Limits(
            max_connections=MAX_CONNECTIONS,
            max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
            keepalive_expiry=KEEPALIVE_EXPIRY,
        ),
        http2=http2,
        follow_redirects=True,
        verify=ssl_ctx,
        headers={"User-Agent": user_agent},
    )

    logger.debug(
        "HTTPX client created",
        extra={"stage": "transport", "http2": http2, "max_connections": MAX_CONNECTIONS},
    )
    return client


__all__ = ["create_ssl_context", "create_http_client"]
