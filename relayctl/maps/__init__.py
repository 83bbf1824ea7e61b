"""Maps module — routing, sender-relay and credential lookup tables."""

from relayctl.maps.manager import MapManager
from relayctl.maps.tables import CredentialMap, MapTable, SenderRelayMap, TransportMap
from relayctl.maps.types import CredentialEntry, MapEntry, parse_route

__all__ = [
    "CredentialEntry",
    "CredentialMap",
    "MapEntry",
    "MapManager",
    "MapTable",
    "SenderRelayMap",
    "TransportMap",
    "parse_route",
]
