"""ConfigStore — read, update and rewrite the MTA's main configuration."""

from __future__ import annotations

from pathlib import Path

import structlog

from relayctl.core.config import PostfixConfig
from relayctl.core.exceptions import ConfigIOError, ValidationError
from relayctl.postfix.atomic import AtomicWriter
from relayctl.postfix.certs import parse_certificate, validate_private_key
from relayctl.postfix.locking import DirectoryLock
from relayctl.postfix.parser import parse_main_cf, render_main_cf
from relayctl.postfix.tools import PostfixTools
from relayctl.postfix.types import CertificateInfo, CertificateKind, ManagedConfig

logger = structlog.stdlib.get_logger()

_CERT_FILES: dict[CertificateKind, tuple[str, str]] = {
    CertificateKind.SMTP: ("smtp-client.crt", "smtp-client.key"),
    CertificateKind.SMTPD: ("smtpd-server.crt", "smtpd-server.key"),
}

_CERT_PARAMS: dict[CertificateKind, tuple[str, str]] = {
    CertificateKind.SMTP: ("smtp_tls_cert_file", "smtp_tls_key_file"),
    CertificateKind.SMTPD: ("smtpd_tls_cert_file", "smtpd_tls_key_file"),
}


class ConfigStore:
    """Typed access to ``main.cf`` with atomic, lock-serialized writes.

    Usage::

        store = ConfigStore(settings.postfix)
        cfg = store.read()
        cfg.relay.relayhost = "[smtp.example.com]:587"
        store.write_full(cfg)
        store.validate()
        store.reload()
    """

    def __init__(
        self,
        config: PostfixConfig | None = None,
        tools: PostfixTools | None = None,
        writer: AtomicWriter | None = None,
    ) -> None:
        from relayctl.core.config import get_settings

        self._config = config or get_settings().postfix
        self._dir = Path(self._config.config_dir)
        self._path = self._dir / self._config.main_cf
        self._tools = tools or PostfixTools(self._config)
        self._writer = writer or AtomicWriter(max_backups=self._config.max_backups)
        self._lock = DirectoryLock.for_directory(self._dir)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def config_dir(self) -> Path:
        return self._dir

    @property
    def lock(self) -> DirectoryLock:
        return self._lock

    @property
    def writer(self) -> AtomicWriter:
        return self._writer

    @property
    def tools(self) -> PostfixTools:
        return self._tools

    # ── Reads ───────────────────────────────────────────────────

    def read(self) -> ManagedConfig:
        """Parse the config into typed sections plus the residual map."""
        return ManagedConfig.from_params(self.read_params())

    def read_params(self) -> dict[str, str]:
        """The full ordered parameter map as found on disk."""
        with self._lock.read():
            return self._load()

    def _load(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise ConfigIOError(f"failed to read {self._path}: {exc}") from exc
        return parse_main_cf(text)

    # ── Writes ──────────────────────────────────────────────────

    def update(self, partial: dict[str, str]) -> None:
        """Set (non-empty value) or delete (empty value) individual keys."""
        with self._lock.write():
            params = self._load()
            _merge(params, partial)
            self._store(params)
        logger.info("config_updated", keys=sorted(partial))

    def write_full(self, cfg: ManagedConfig) -> None:
        """Write every typed field, keeping all parameters it does not model."""
        with self._lock.write():
            params = self._load()
            _merge(params, cfg.to_params())
            self._store(params)
        logger.info("config_written", path=str(self._path))

    def replace_params(self, params: dict[str, str]) -> None:
        """Replace the whole parameter map (used to restore a snapshot)."""
        with self._lock.write():
            self._store(dict(params))
        logger.info("config_replaced", path=str(self._path), keys=len(params))

    def _store(self, params: dict[str, str]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        self._writer.write(self._path, render_main_cf(params), mode=0o640)

    # ── External tools ──────────────────────────────────────────

    def validate(self) -> None:
        """Run the external checks; raises ValidationError with all diagnostics."""
        with self._lock.read():
            self._tools.validate()

    def reload(self) -> None:
        self._tools.reload()

    # ── Certificates ────────────────────────────────────────────

    def save_certificate(
        self,
        kind: CertificateKind | str,
        cert_bytes: bytes,
        key_bytes: bytes,
    ) -> CertificateInfo:
        """Validate and install a TLS certificate/key pair, then point the config at it."""
        try:
            kind = CertificateKind(kind)
        except ValueError as exc:
            raise ValidationError(f"invalid certificate type: {kind}") from exc

        cert = parse_certificate(cert_bytes)
        validate_private_key(key_bytes)

        certs_dir = self._dir / self._config.certs_subdir
        cert_name, key_name = _CERT_FILES[kind]
        cert_path = certs_dir / cert_name
        key_path = certs_dir / key_name
        cert_param, key_param = _CERT_PARAMS[kind]

        with self._lock.write():
            try:
                certs_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            except OSError as exc:
                raise ConfigIOError(f"failed to create {certs_dir}: {exc}") from exc
            self._writer.write(cert_path, cert_bytes, mode=0o644, backup=False)
            self._writer.write(key_path, key_bytes, mode=0o600, backup=False)
            self.update({cert_param: str(cert_path), key_param: str(key_path)})

        logger.info(
            "certificate_saved",
            kind=kind.value,
            subject=cert.subject.rfc4514_string(),
            valid_to=cert.not_valid_after_utc.isoformat(),
        )
        return _cert_info(kind, cert_path, key_path, cert)

    def list_certificates(self) -> list[CertificateInfo]:
        """Info for every configured certificate that can be read and parsed."""
        cfg = self.read()
        found: list[CertificateInfo] = []
        pairs = [
            (CertificateKind.SMTP, cfg.tls.smtp_tls_cert_file, cfg.tls.smtp_tls_key_file),
            (CertificateKind.SMTPD, cfg.tls.smtpd_tls_cert_file, cfg.tls.smtpd_tls_key_file),
        ]
        for kind, cert_file, key_file in pairs:
            if not cert_file:
                continue
            try:
                cert = parse_certificate(Path(cert_file).read_bytes())
            except (OSError, ValidationError):
                logger.warning("certificate_unreadable", kind=kind.value, path=cert_file)
                continue
            found.append(_cert_info(kind, Path(cert_file), Path(key_file), cert))
        return found


def _merge(params: dict[str, str], updates: dict[str, str]) -> None:
    for key, value in updates.items():
        if value:
            params[key] = value
        else:
            params.pop(key, None)


def _cert_info(
    kind: CertificateKind,
    cert_path: Path,
    key_path: Path,
    cert: object,
) -> CertificateInfo:
    return CertificateInfo(
        kind=kind,
        cert_file=str(cert_path),
        key_file=str(key_path),
        valid_from=cert.not_valid_before_utc,  # type: ignore[attr-defined]
        valid_to=cert.not_valid_after_utc,  # type: ignore[attr-defined]
        subject=cert.subject.rfc4514_string(),  # type: ignore[attr-defined]
        issuer=cert.issuer.rfc4514_string(),  # type: ignore[attr-defined]
    )
