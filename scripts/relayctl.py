#!/usr/bin/env python3
"""Operator CLI — config, maps, queue, runbooks and secrets.

Usage::

    python scripts/relayctl.py config show
    python scripts/relayctl.py config apply relayhost=[smtp.example.com]:587
    python scripts/relayctl.py config rollback 3
    python scripts/relayctl.py config cert smtp client.crt client.key
    python scripts/relayctl.py maps routing add example.com relay.example.com --port 587
    python scripts/relayctl.py maps credentials set [smtp.example.com]:587 user
    python scripts/relayctl.py queue list --status hold
    python scripts/relayctl.py queue hold 3F2A1B4C5D
    python scripts/relayctl.py runbook queue_growth
"""

from __future__ import annotations

import argparse
import getpass
import json
import sys
from pathlib import Path

import pydantic

from relayctl.alerts.runbooks import get_runbook
from relayctl.core.config import Settings, load_settings
from relayctl.core.exceptions import RelayError, ValidationError
from relayctl.core.logging import setup_logging
from relayctl.core.secrets import SecretBox
from relayctl.maps.manager import MapManager
from relayctl.maps.types import MapEntry
from relayctl.postfix.apply import ConfigApplier
from relayctl.postfix.store import ConfigStore
from relayctl.postfix.tools import PostfixTools, SubprocessRunner
from relayctl.postfix.versions import load_history, save_history
from relayctl.queue.controller import QueueController
from relayctl.queue.inspector import QueueInspector


def _store(settings: Settings) -> ConfigStore:
    return ConfigStore(settings.postfix)


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


# ── config ──────────────────────────────────────────────────────


def cmd_config(args: argparse.Namespace, settings: Settings) -> int:
    store = _store(settings)

    if args.action == "show":
        _print_json(store.read_params())
    elif args.action == "validate":
        store.validate()
        print("configuration OK")
    elif args.action == "reload":
        store.reload()
        print("reload requested")
    elif args.action == "apply":
        updates: dict[str, str] = {}
        for pair in args.params:
            key, sep, value = pair.partition("=")
            if not sep or not key.strip():
                raise ValidationError(f"expected key=value, got {pair!r}")
            updates[key.strip()] = value.strip()
        history_path = settings.postfix.history_file
        applier = ConfigApplier(store, load_history(history_path))
        version = applier.apply(updates, author=getpass.getuser(), notes=args.notes)
        save_history(applier.history, history_path, store.writer)
        print(f"applied version {version.version_number}")
    elif args.action == "rollback":
        history_path = settings.postfix.history_file
        applier = ConfigApplier(store, load_history(history_path))
        version = applier.rollback(args.version, author=getpass.getuser())
        save_history(applier.history, history_path, store.writer)
        print(f"rolled back to version {version.version_number}")
    elif args.action == "history":
        versions = load_history(settings.postfix.history_file).list(limit=args.limit)
        _print_json([v.model_dump(mode="json", exclude={"content"}) for v in versions])
    elif args.action == "cert":
        info = store.save_certificate(
            args.kind,
            Path(args.cert).read_bytes(),
            Path(args.key).read_bytes(),
        )
        _print_json(info.model_dump(mode="json"))
    elif args.action == "certs":
        _print_json([c.model_dump(mode="json") for c in store.list_certificates()])
    elif args.action == "status":
        tools = PostfixTools(settings.postfix, SubprocessRunner(settings.postfix.command_timeout_secs))
        _print_json({"running": tools.is_running(), "version": tools.mail_version()})
    return 0


# ── maps ────────────────────────────────────────────────────────


def cmd_maps(args: argparse.Namespace, settings: Settings) -> int:
    maps = MapManager(_store(settings), settings.maps)

    if args.table == "credentials":
        table = maps.credentials
        if args.action == "list":
            for entry in table.list():
                print(f"{entry.host}\t{entry.username}")
        elif args.action == "set":
            secret = getpass.getpass(f"Password for {args.username}@{args.key}: ")
            table.set(args.key, args.username, secret)
        elif args.action == "delete":
            table.delete(args.key)
        return 0

    table = maps.routing if args.table == "routing" else maps.sender_relay
    if args.action == "list":
        for entry in table.list():
            flag = "" if entry.enabled else "  (disabled)"
            print(f"{entry.key}\t{entry.value}{flag}")
    elif args.action in ("add", "update"):
        if args.table == "routing":
            entry = MapEntry.route(args.key, args.target, args.port, enabled=not args.disabled)
        else:
            entry = MapEntry(key=args.key, value=args.target, enabled=not args.disabled)
        if args.action == "add":
            table.add(entry)
        else:
            table.update(args.key, entry)
    elif args.action == "delete":
        table.delete(args.key)
    elif args.action == "recover":
        for path in maps.recover():
            print(f"removed {path}")
    return 0


# ── queue ───────────────────────────────────────────────────────


def cmd_queue(args: argparse.Namespace, settings: Settings) -> int:
    runner = SubprocessRunner(settings.postfix.command_timeout_secs)
    inspector = QueueInspector(settings.queue, runner)

    if args.action == "list":
        _print_json([e.model_dump(mode="json") for e in inspector.list(args.status)])
    elif args.action == "summary":
        summary = inspector.summary()
        _print_json({**summary.model_dump(), "total": summary.total})
    elif args.action == "show":
        _print_json(inspector.get(args.queue_id).model_dump(mode="json"))
    else:
        controller = QueueController(
            settings.queue, runner, inspector, use_sudo=settings.postfix.use_sudo,
        )
        if args.action == "hold":
            controller.hold(args.queue_id)
        elif args.action == "release":
            controller.release(args.queue_id)
        elif args.action == "delete":
            controller.delete(args.queue_id)
        elif args.action == "flush":
            controller.flush_all()
        elif args.action == "requeue":
            controller.requeue_all()
    return 0


# ── runbook / secret ────────────────────────────────────────────


def cmd_runbook(args: argparse.Namespace, settings: Settings) -> int:
    book = get_runbook(args.rule_type)
    print(book.title)
    print()
    print(book.overview)
    print()
    for i, step in enumerate(book.steps, start=1):
        print(f"{i}. {step}")
    for link in book.links:
        print(f"   {link}")
    return 0


def cmd_seal(args: argparse.Namespace, settings: Settings) -> int:
    box = SecretBox(settings.secrets.passphrase.get_secret_value())
    value = getpass.getpass("Value to encrypt: ")
    print(box.seal(value))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Relay control plane operator CLI.")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level: DEBUG, INFO, WARNING, ERROR",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # config
    p_config = sub.add_parser("config", help="Inspect and change main.cf")
    c_sub = p_config.add_subparsers(dest="action", required=True)
    c_sub.add_parser("show")
    c_sub.add_parser("validate")
    c_sub.add_parser("reload")
    c_sub.add_parser("certs")
    c_sub.add_parser("status")
    p_apply = c_sub.add_parser("apply", help="Write, validate and reload key=value changes")
    p_apply.add_argument("params", nargs="+", metavar="KEY=VALUE")
    p_apply.add_argument("--notes", default="")
    p_rollback = c_sub.add_parser("rollback", help="Restore an earlier applied version")
    p_rollback.add_argument("version", type=int)
    p_history = c_sub.add_parser("history", help="List recorded config versions")
    p_history.add_argument("--limit", type=int, default=20)
    p_cert = c_sub.add_parser("cert", help="Install a TLS certificate and key")
    p_cert.add_argument("kind", choices=["smtp", "smtpd"])
    p_cert.add_argument("cert")
    p_cert.add_argument("key")
    p_config.set_defaults(func=cmd_config)

    # maps
    p_maps = sub.add_parser("maps", help="Routing, sender-relay and credential maps")
    m_sub = p_maps.add_subparsers(dest="table", required=True)
    for table in ("routing", "sender-relay"):
        p_table = m_sub.add_parser(table)
        t_sub = p_table.add_subparsers(dest="action", required=True)
        t_sub.add_parser("list")
        t_sub.add_parser("recover")
        for action in ("add", "update"):
            p_act = t_sub.add_parser(action)
            p_act.add_argument("key")
            p_act.add_argument("target")
            p_act.add_argument("--port", type=int, default=25)
            p_act.add_argument("--disabled", action="store_true")
        p_del = t_sub.add_parser("delete")
        p_del.add_argument("key")
    p_creds = m_sub.add_parser("credentials")
    cr_sub = p_creds.add_subparsers(dest="action", required=True)
    cr_sub.add_parser("list")
    p_set = cr_sub.add_parser("set")
    p_set.add_argument("key", metavar="HOST")
    p_set.add_argument("username")
    p_cdel = cr_sub.add_parser("delete")
    p_cdel.add_argument("key", metavar="HOST")
    p_maps.set_defaults(func=cmd_maps)

    # queue
    p_queue = sub.add_parser("queue", help="Inspect and act on the delivery queue")
    q_sub = p_queue.add_subparsers(dest="action", required=True)
    p_list = q_sub.add_parser("list")
    p_list.add_argument("--status", choices=["active", "deferred", "hold"], default=None)
    q_sub.add_parser("summary")
    q_sub.add_parser("flush")
    q_sub.add_parser("requeue")
    for action in ("show", "hold", "release", "delete"):
        p_q = q_sub.add_parser(action)
        p_q.add_argument("queue_id")
    p_queue.set_defaults(func=cmd_queue)

    # runbook
    p_rb = sub.add_parser("runbook", help="Show remediation steps for an alert type")
    p_rb.add_argument("rule_type")
    p_rb.set_defaults(func=cmd_runbook)

    # secret
    p_seal = sub.add_parser("seal", help="Encrypt a channel setting (prints enc:...)")
    p_seal.set_defaults(func=cmd_seal)

    return parser


def main() -> None:
    args = build_parser().parse_args()
    settings = load_settings(args.config)
    setup_logging(level=args.log_level, fmt="console")

    try:
        code = args.func(args, settings)
    except ValidationError as exc:
        for line in exc.messages:
            print(f"error: {line}", file=sys.stderr)
        code = 1
    except (RelayError, pydantic.ValidationError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
