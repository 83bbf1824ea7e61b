"""Map records — routing / sender-relay entries and relay credentials."""

from __future__ import annotations

from pydantic import BaseModel, SecretStr, field_validator

DEFAULT_SMTP_PORT = 25
ROUTE_TRANSPORT = "smtp"


def _check_token(value: str, what: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{what} must not be empty")
    if any(ch.isspace() for ch in value):
        raise ValueError(f"{what} must not contain whitespace")
    return value


def _check_value(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("value must not be empty")
    if "\n" in value or "\r" in value:
        raise ValueError("value must be a single line")
    return value


class MapEntry(BaseModel):
    """One ``key value(s)`` record of a lookup table.

    The value is everything after the key and may hold several
    whitespace-separated fields. A disabled entry stays in the file as a
    ``# disabled: key value`` comment.
    """

    key: str
    value: str
    enabled: bool = True

    @field_validator("key")
    @classmethod
    def _valid_key(cls, v: str) -> str:
        v = _check_token(v, "key")
        if v.startswith("#"):
            raise ValueError("key must not start with #")
        return v

    @field_validator("value")
    @classmethod
    def _valid_value(cls, v: str) -> str:
        return _check_value(v)

    @classmethod
    def route(
        cls,
        domain: str,
        next_hop: str,
        port: int = DEFAULT_SMTP_PORT,
        enabled: bool = True,
    ) -> MapEntry:
        """Routing entry sending *domain* to ``smtp:[next_hop]:port``."""
        hop = next_hop.strip().strip("[]")
        return cls(key=domain, value=f"{ROUTE_TRANSPORT}:[{hop}]:{port}", enabled=enabled)

    @property
    def next_hop(self) -> str:
        return parse_route(self.value)[0]

    @property
    def port(self) -> int:
        return parse_route(self.value)[1]


def parse_route(value: str) -> tuple[str, int]:
    """Split a transport value into ``(next_hop, port)``.

    ``smtp:[relay.example.com]:587`` → ``("relay.example.com", 587)``. A value
    without a port, or with an unparseable one, gets port 25.
    """
    rest = value
    prefix = f"{ROUTE_TRANSPORT}:"
    if rest.startswith(prefix):
        rest = rest[len(prefix):]

    port = DEFAULT_SMTP_PORT
    if rest.startswith("["):
        host, _, tail = rest[1:].partition("]")
        if tail.startswith(":") and tail[1:].isdigit():
            port = int(tail[1:])
        return host, port

    host, sep, port_str = rest.rpartition(":")
    if not sep:
        return rest, port
    if port_str.isdigit():
        port = int(port_str)
    return host, port


class CredentialEntry(BaseModel):
    """Relay login for one host key, stored as ``host username:secret``."""

    host: str
    username: str
    secret: SecretStr

    @field_validator("host")
    @classmethod
    def _valid_host(cls, v: str) -> str:
        return _check_token(v, "host")

    @field_validator("username")
    @classmethod
    def _valid_username(cls, v: str) -> str:
        v = _check_token(v, "username")
        if ":" in v:
            raise ValueError("username must not contain ':'")
        return v

    @field_validator("secret")
    @classmethod
    def _valid_secret(cls, v: SecretStr) -> SecretStr:
        raw = v.get_secret_value()
        if not raw or "\n" in raw or "\r" in raw:
            raise ValueError("secret must be a non-empty single line")
        return v

    def record(self) -> str:
        return f"{self.host} {self.username}:{self.secret.get_secret_value()}"
