"""Build the configured :class:`Transport`."""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Optional

from ..errors import ConfigError
from .base import ClientFactory, Transport
from .client import create_http_client
from .gateway import GatewayTransport
from .node import NodeTransport
from .trustless import TrustlessGatewayTransport

if TYPE_CHECKING:  # pragma: no cover
    from ..settings import TransportSettings

__all__ = ["TRANSPORT_TYPES", "create_transport"]

#: Strategy name to implementation
TRANSPORT_TYPES = {
    GatewayTransport.name: GatewayTransport,
    TrustlessGatewayTransport.name: TrustlessGatewayTransport,
    NodeTransport.name: NodeTransport,
}


def create_transport(
    settings: "TransportSettings",
    *,
    client_factory: Optional[ClientFactory] = None,
) -> Transport:
    """Instantiate the strategy named by ``settings.strategy``.

    The transport is returned uninitialised; its client is created on first use.
    """

    strategy = str(getattr(settings.strategy, "value", settings.strategy))
    factory = client_factory or partial(create_http_client, settings)
    if strategy == NodeTransport.name:
        return NodeTransport(settings.node_api_url, client_factory=factory)
    if strategy == TrustlessGatewayTransport.name:
        return TrustlessGatewayTransport(settings.gateways, client_factory=factory)
    if strategy == GatewayTransport.name:
        return GatewayTransport(settings.gateways, client_factory=factory)
    raise ConfigError(
        f"unknown transport strategy {strategy!r}; expected one of {', '.join(TRANSPORT_TYPES)}"
    )
