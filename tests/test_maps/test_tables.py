"""Tests for the routing and sender-relay lookup tables."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from relayctl.core.config import MapsConfig, PostfixConfig
from relayctl.core.exceptions import ConflictError, ExternalToolError, NotFoundError
from relayctl.maps.manager import MapManager
from relayctl.maps.types import MapEntry, parse_route
from relayctl.postfix.store import ConfigStore
from relayctl.postfix.tools import CommandResult, PostfixTools


# ── Helpers ─────────────────────────────────────────────────────


class PostmapRunner:
    """Pretends to be postmap: writes ``<source>.db`` unless told to fail."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.fail = False

    def run(self, argv: Sequence[str]) -> CommandResult:
        args = list(argv)
        self.calls.append(args)
        if args[0] == "postmap":
            if self.fail:
                return CommandResult(argv=args, returncode=1, output="postmap: fatal: bad record")
            _, _, source = args[1].partition(":")
            Path(source + ".db").write_text("compiled:" + Path(source).read_text())
        return CommandResult(argv=args, returncode=0)


def _manager(tmp_path: Path) -> tuple[MapManager, ConfigStore, PostmapRunner]:
    cfg = PostfixConfig(config_dir=tmp_path, use_sudo=False)
    runner = PostmapRunner()
    store = ConfigStore(cfg, tools=PostfixTools(cfg, runner))
    return MapManager(store, MapsConfig()), store, runner


# ── Routing ─────────────────────────────────────────────────────


class TestRouting:
    def test_add_conflict_delete_add(self, tmp_path: Path) -> None:
        maps, store, _ = _manager(tmp_path)
        table = maps.routing

        table.add(MapEntry.route("example.com", "relay.example.com", 587))
        assert (tmp_path / "transport").read_text().endswith(
            "example.com\tsmtp:[relay.example.com]:587\n"
        )
        assert store.read_params()["transport_maps"] == f"hash:{tmp_path / 'transport'}"

        with pytest.raises(ConflictError):
            table.add(MapEntry.route("example.com", "other.example.com"))

        table.delete("example.com")
        assert table.list() == []

        table.add(MapEntry.route("example.com", "other.example.com"))
        entry = table.get("example.com")
        assert entry.next_hop == "other.example.com"
        assert entry.port == 25

    def test_index_compiled_from_saved_content(self, tmp_path: Path) -> None:
        maps, _, runner = _manager(tmp_path)
        maps.routing.add(MapEntry.route("example.com", "relay.example.com", 587))
        assert runner.calls[0] == ["postmap", f"hash:{tmp_path / 'transport.staging'}"]
        index = tmp_path / "transport.db"
        assert index.read_text() == "compiled:" + (tmp_path / "transport").read_text()
        assert not (tmp_path / "transport.staging").exists()
        assert not (tmp_path / "transport.staging.db").exists()

    def test_disabled_entries_round_trip(self, tmp_path: Path) -> None:
        maps, _, _ = _manager(tmp_path)
        maps.routing.save([
            MapEntry.route("a.example", "r1"),
            MapEntry.route("b.example", "r2", enabled=False),
        ])
        text = (tmp_path / "transport").read_text()
        assert "# disabled: b.example\tsmtp:[r2]:25\n" in text
        entries = maps.routing.list()
        assert [(e.key, e.enabled) for e in entries] == [("a.example", True), ("b.example", False)]

    def test_header_comments_are_not_records(self, tmp_path: Path) -> None:
        maps, _, _ = _manager(tmp_path)
        (tmp_path / "transport").write_text(
            "# Transport maps - managed by relayctl\n"
            "# Format: domain transport:nexthop\n"
            "# two words\n"
            "# disabled: old.example smtp:[old]:25\n"
            "\n"
            "example.com  smtp:[relay]:25\n"
            "lonely\n"
        )
        entries = maps.routing.list()
        assert [(e.key, e.enabled) for e in entries] == [("old.example", False), ("example.com", True)]

    def test_plain_comment_does_not_shadow_a_key(self, tmp_path: Path) -> None:
        maps, _, _ = _manager(tmp_path)
        (tmp_path / "transport").write_text("# two words\n")
        maps.routing.add(MapEntry(key="two", value="smtp:[relay]:25"))
        assert maps.routing.get("two").enabled
        assert "# two" not in (tmp_path / "transport").read_text()

    def test_multi_field_values_survive_rewrite(self, tmp_path: Path) -> None:
        maps, _, _ = _manager(tmp_path)
        (tmp_path / "sender_relay").write_text("@example.com [a.example.net]:587 extra\n")
        maps.sender_relay.add(MapEntry(key="@other.com", value="[b.example.net]:587"))
        assert maps.sender_relay.get("@example.com").value == "[a.example.net]:587 extra"
        assert "@example.com\t[a.example.net]:587 extra\n" in (tmp_path / "sender_relay").read_text()

    def test_update_and_missing_keys(self, tmp_path: Path) -> None:
        maps, _, _ = _manager(tmp_path)
        table = maps.routing
        table.add(MapEntry.route("a.example", "r1"))
        table.add(MapEntry.route("b.example", "r2"))

        table.update("a.example", MapEntry.route("a.example", "r3", 2525))
        assert table.get("a.example").value == "smtp:[r3]:2525"

        with pytest.raises(ConflictError):
            table.update("a.example", MapEntry.route("b.example", "r4"))
        with pytest.raises(NotFoundError):
            table.update("c.example", MapEntry.route("c.example", "r4"))
        with pytest.raises(NotFoundError):
            table.delete("c.example")
        with pytest.raises(NotFoundError):
            table.get("c.example")

    def test_pointer_written_only_once(self, tmp_path: Path) -> None:
        maps, store, _ = _manager(tmp_path)
        maps.routing.add(MapEntry.route("a.example", "r1"))
        backups_after_first = len(store.writer.backups(store.path))
        maps.routing.add(MapEntry.route("b.example", "r2"))
        assert len(store.writer.backups(store.path)) == backups_after_first


class TestCompileFailure:
    def test_live_files_untouched(self, tmp_path: Path) -> None:
        maps, store, runner = _manager(tmp_path)
        maps.routing.add(MapEntry.route("a.example", "r1"))
        before = (tmp_path / "transport").read_text()
        index_before = (tmp_path / "transport.db").read_text()
        params_before = store.read_params()

        runner.fail = True
        with pytest.raises(ExternalToolError, match="bad record"):
            maps.routing.add(MapEntry.route("b.example", "r2"))

        assert (tmp_path / "transport").read_text() == before
        assert (tmp_path / "transport.db").read_text() == index_before
        assert not (tmp_path / "transport.staging").exists()
        assert store.read_params() == params_before


class TestRecover:
    def test_removes_staging_leftovers(self, tmp_path: Path) -> None:
        maps, _, _ = _manager(tmp_path)
        (tmp_path / "transport.staging").write_text("half written")
        (tmp_path / "sasl_passwd.staging.db").write_text("x")

        removed = maps.recover()

        assert sorted(p.name for p in removed) == ["sasl_passwd.staging.db", "transport.staging"]
        assert maps.recover() == []


class TestSenderRelay:
    def test_pointer_param(self, tmp_path: Path) -> None:
        maps, store, _ = _manager(tmp_path)
        maps.sender_relay.add(MapEntry(key="@example.com", value="[relay.example.com]:587"))
        assert store.read_params()["sender_dependent_relayhost_maps"] == (
            f"hash:{tmp_path / 'sender_relay'}"
        )
        assert maps.sender_relay.get("@example.com").value == "[relay.example.com]:587"


class TestTypes:
    def test_parse_route(self) -> None:
        assert parse_route("smtp:[relay.example.com]:587") == ("relay.example.com", 587)
        assert parse_route("smtp:[relay.example.com]") == ("relay.example.com", 25)
        assert parse_route("relay.example.com:2525") == ("relay.example.com", 2525)
        assert parse_route("relay.example.com") == ("relay.example.com", 25)

    def test_entry_validation(self) -> None:
        with pytest.raises(ValueError):
            MapEntry(key="bad key", value="x")
        with pytest.raises(ValueError):
            MapEntry(key="#k", value="x")
        with pytest.raises(ValueError):
            MapEntry(key="k", value="")
        with pytest.raises(ValueError):
            MapEntry(key="k", value="a\nb")
        assert MapEntry(key="k", value=" a  b ").value == "a  b"

    def test_route_strips_brackets(self) -> None:
        assert MapEntry.route("d", "[relay]", 465).value == "smtp:[relay]:465"
