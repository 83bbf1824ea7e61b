"""Pure functions for the ``main.cf`` text format.

The format is line oriented ``key = value``. ``#`` starts a full-line
comment. A value continues onto the next line either when the line ends in a
backslash or when the next line starts with whitespace (Postfix's own
convention); continued pieces are joined with a single space.
"""

from __future__ import annotations

import datetime

# Section order used when serializing. Grouping is cosmetic only.
SECTIONS: list[tuple[str, list[str]]] = [
    ("General", [
        "myhostname", "mydomain", "myorigin", "inet_interfaces", "inet_protocols",
    ]),
    ("Network", ["mynetworks", "relay_domains", "relayhost"]),
    ("TLS", [
        "smtp_tls_security_level",
        "smtpd_tls_security_level",
        "smtp_tls_cert_file",
        "smtp_tls_key_file",
        "smtpd_tls_cert_file",
        "smtpd_tls_key_file",
        "smtp_tls_CAfile",
        "smtp_tls_loglevel",
    ]),
    ("SASL", [
        "smtp_sasl_auth_enable",
        "smtp_sasl_password_maps",
        "smtp_sasl_security_options",
        "smtp_sasl_tls_security_options",
    ]),
    ("Restrictions", [
        "smtpd_relay_restrictions",
        "smtpd_recipient_restrictions",
        "smtpd_sender_restrictions",
    ]),
]

HEADER = "# Postfix main.cf - managed by relayctl"


def parse_main_cf(text: str) -> dict[str, str]:
    """Parse config text into an ordered ``key -> value`` map.

    Later definitions of a key override earlier ones, as Postfix does.
    Lines that are neither comments, assignments nor continuations are
    ignored.
    """
    params: dict[str, str] = {}
    key: str | None = None
    pieces: list[str] = []
    pending_backslash = False

    def _flush() -> None:
        nonlocal key, pieces
        if key is not None:
            params[key] = " ".join(p for p in pieces if p)
        key = None
        pieces = []

    for raw in text.splitlines():
        stripped = raw.strip()

        if not stripped or stripped.startswith("#"):
            # A comment or blank line cannot continue a backslash value.
            if pending_backslash:
                pending_backslash = False
                _flush()
            continue

        continues = pending_backslash or (key is not None and raw[:1] in (" ", "\t"))
        if continues:
            piece, pending_backslash = _strip_backslash(stripped)
            pieces.append(piece)
            if not pending_backslash and raw[:1] not in (" ", "\t"):
                _flush()
            continue

        _flush()
        idx = raw.find("=")
        if idx <= 0:
            continue
        key = raw[:idx].strip()
        if not key:
            key = None
            continue
        piece, pending_backslash = _strip_backslash(raw[idx + 1:].strip())
        pieces = [piece]

    _flush()
    return params


def _strip_backslash(value: str) -> tuple[str, bool]:
    if value.endswith("\\"):
        return value[:-1].rstrip(), True
    return value, False


def render_main_cf(
    params: dict[str, str],
    now: datetime.datetime | None = None,
) -> str:
    """Serialize *params* grouped by section, unknown keys last in order.

    Empty values are written as a bare ``key =``; callers drop a key from
    *params* to unset it.
    """
    stamp = (now or datetime.datetime.now(datetime.UTC)).isoformat(timespec="seconds")
    lines = [HEADER, f"# Last modified: {stamp}", ""]

    written: set[str] = set()
    for name, keys in SECTIONS:
        lines.append(f"# {name}")
        for k in keys:
            if k in params:
                lines.append(_format_param(k, params[k]))
                written.add(k)
        lines.append("")

    lines.append("# Other")
    for k, value in params.items():
        if k not in written:
            lines.append(_format_param(k, value))

    return "\n".join(lines) + "\n"


def _format_param(key: str, value: str) -> str:
    # Embedded newlines would break the line format; fold them.
    value = " ".join(part.strip() for part in value.splitlines() if part.strip())
    return f"{key} = {value}" if value else f"{key} ="
