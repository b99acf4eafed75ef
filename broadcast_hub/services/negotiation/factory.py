from typing import Any, Dict, List, Optional

from .base import PeerTransport, TransportFactory
from broadcast_hub.config import settings


def get_transport_factory(ice_servers: Optional[List[Dict[str, Any]]] = None) -> TransportFactory:
    """Build a factory of aiortc transports sharing one media relay."""
    from aiortc.contrib.media import MediaRelay  # lazy import
    from .aiortc_transport import AiortcTransport

    servers = settings.ice_servers() if ice_servers is None else ice_servers
    relay = MediaRelay()

    def create() -> PeerTransport:
        return AiortcTransport(ice_servers=servers, relay=relay)

    return create
