"""Embedded-node transport: reads through a local IPFS node's RPC API."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..constants import DEFAULT_NODE_API_URL
from ..errors import TransportInitError
from .base import ClientFactory, Transport
from .retry import error_for_status

logger = logging.getLogger(__name__)

__all__ = ["NodeTransport"]


class NodeTransport(Transport):
    """Fetch via ``POST /api/v0/cat`` on an IPFS node.

    The node resolves the path and verifies every block it retrieves, so
    content needs no further digest check. :meth:`init` probes
    ``/api/v0/version`` and raises
    :class:`~CircuitArtifacts.ArtifactDownload.errors.TransportInitError`
    when no node answers.
    """

    name = "node"
    verifies_content = True

    def __init__(
        self,
        api_url: str = DEFAULT_NODE_API_URL,
        *,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        super().__init__(client_factory=client_factory)
        self.api_url = api_url.rstrip("/")
        self.node_version: Optional[str] = None

    def _on_init(self, client: httpx.Client) -> None:
        url = f"{self.api_url}/api/v0/version"
        try:
            response = client.post(url)
        except httpx.HTTPError as exc:
            raise TransportInitError(f"IPFS node at {self.api_url} is unreachable: {exc}") from exc
        if not response.is_success:
            raise TransportInitError(
                f"IPFS node at {self.api_url} answered HTTP {response.status_code} to version probe"
            )
        try:
            self.node_version = response.json().get("Version")
        except ValueError:
            self.node_version = None
        logger.info(
            "connected to IPFS node",
            extra={"stage": "transport", "api_url": self.api_url, "node_version": self.node_version},
        )

    def _fetch(self, client: httpx.Client, root_id: str, path: str) -> bytes:
        url = f"{self.api_url}/api/v0/cat"
        response = client.post(url, params={"arg": f"/ipfs/{root_id}/{path}"})
        error_for_status(response, url=url)
        return response.content
