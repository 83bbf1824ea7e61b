"""MapManager — the three lookup tables of one config directory."""

from __future__ import annotations

from pathlib import Path

from relayctl.core.config import MapsConfig
from relayctl.maps.tables import CredentialMap, SenderRelayMap, TransportMap
from relayctl.postfix.store import ConfigStore


class MapManager:
    """Groups the routing, sender-relay and credential tables.

    Usage::

        maps = MapManager(store)
        maps.routing.add(MapEntry.route("example.com", "relay.example.com", 587))
        maps.credentials.set("[smtp.example.com]:587", "user", "secret")
    """

    def __init__(self, store: ConfigStore, config: MapsConfig | None = None) -> None:
        self.routing = TransportMap(store, config)
        self.sender_relay = SenderRelayMap(store, config)
        self.credentials = CredentialMap(store, config)

    def recover(self) -> list[Path]:
        """Clean up staging files left by an interrupted save of any table."""
        removed: list[Path] = []
        for table in (self.routing, self.sender_relay, self.credentials):
            removed.extend(table.recover())
        return removed
