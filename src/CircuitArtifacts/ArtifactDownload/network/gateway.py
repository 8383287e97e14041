"""Plain HTTP gateway transport with per-request rotation."""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Optional, Sequence

import httpx

from ..constants import DEFAULT_GATEWAYS
from ..errors import ConfigError
from .base import ClientFactory, Transport

logger = logging.getLogger(__name__)

__all__ = ["GatewayTransport"]


class GatewayTransport(Transport):
    """Fetch ``GET {gateway}/ipfs/{root}/{path}`` from a rotating gateway list.

    Each call takes the next gateway in round-robin order, so a retried fetch
    lands on a different gateway than the attempt that failed. Gateways return
    whatever bytes they like; content is not verified here and the downloader
    checks digests instead.
    """

    name = "gateway"
    verifies_content = False

    def __init__(
        self,
        gateways: Sequence[str] = DEFAULT_GATEWAYS,
        *,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        super().__init__(client_factory=client_factory)
        self.gateways = tuple(gw.rstrip("/") for gw in gateways)
        if not self.gateways:
            raise ConfigError("GatewayTransport requires at least one gateway")
        self._cursor = itertools.count()
        self._cursor_lock = threading.Lock()

    def next_gateway(self) -> str:
        with self._cursor_lock:
            index = next(self._cursor)
        return self.gateways[index % len(self.gateways)]

    def url_for(self, gateway: str, root_id: str, path: str) -> str:
        return f"{gateway}/ipfs/{root_id}/{path}"

    def _fetch(self, client: httpx.Client, root_id: str, path: str) -> bytes:
        url = self.url_for(self.next_gateway(), root_id, path)
        logger.debug("gateway fetch", extra={"stage": "fetch", "url": url})
        return self._get(client, url).content
