"""Domain types for the MTA configuration — typed sections, versions, certs."""

from __future__ import annotations

import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, PrivateAttr


class GeneralSection(BaseModel):
    myhostname: str = ""
    mydomain: str = ""
    myorigin: str = ""
    inet_interfaces: str = ""
    inet_protocols: str = ""


class RelaySection(BaseModel):
    relayhost: str = ""
    mynetworks: str = ""
    relay_domains: str = ""


class TLSSection(BaseModel):
    smtp_tls_security_level: str = ""
    smtpd_tls_security_level: str = ""
    smtp_tls_cert_file: str = ""
    smtp_tls_key_file: str = ""
    smtpd_tls_cert_file: str = ""
    smtpd_tls_key_file: str = ""
    smtp_tls_CAfile: str = ""  # noqa: N815
    smtp_tls_loglevel: str = ""


class SASLSection(BaseModel):
    smtp_sasl_auth_enable: str = ""
    smtp_sasl_password_maps: str = ""
    smtp_sasl_security_options: str = ""
    smtp_sasl_tls_security_options: str = ""


class RestrictionsSection(BaseModel):
    smtpd_relay_restrictions: str = ""
    smtpd_recipient_restrictions: str = ""
    smtpd_sender_restrictions: str = ""


_SECTION_NAMES = ("general", "relay", "tls", "sasl", "restrictions")


class ManagedConfig(BaseModel):
    """The subset of MTA parameters understood as typed sections.

    Field names are the Postfix parameter names. An empty field means
    "unset" and deletes the parameter on write. Parameters the sections do
    not model are kept in a private residual map so they survive a
    read/write cycle.
    """

    general: GeneralSection = Field(default_factory=GeneralSection)
    relay: RelaySection = Field(default_factory=RelaySection)
    tls: TLSSection = Field(default_factory=TLSSection)
    sasl: SASLSection = Field(default_factory=SASLSection)
    restrictions: RestrictionsSection = Field(default_factory=RestrictionsSection)

    _residual: dict[str, str] = PrivateAttr(default_factory=dict)

    @classmethod
    def managed_keys(cls) -> list[str]:
        keys: list[str] = []
        for name in _SECTION_NAMES:
            section_type = cls.model_fields[name].annotation
            keys.extend(section_type.model_fields)  # type: ignore[union-attr]
        return keys

    @classmethod
    def from_params(cls, params: dict[str, str]) -> ManagedConfig:
        data: dict[str, dict[str, str]] = {}
        for name in _SECTION_NAMES:
            section_type = cls.model_fields[name].annotation
            data[name] = {
                k: params[k]
                for k in section_type.model_fields  # type: ignore[union-attr]
                if k in params
            }
        cfg = cls.model_validate(data)
        managed = set(cls.managed_keys())
        cfg._residual = {k: v for k, v in params.items() if k not in managed}
        return cfg

    def to_params(self) -> dict[str, str]:
        """Modeled parameters only, including empty (= unset) ones."""
        params: dict[str, str] = {}
        for name in _SECTION_NAMES:
            section: BaseModel = getattr(self, name)
            for k, v in section.model_dump().items():
                params[k] = v or ""
        return params

    @property
    def residual(self) -> dict[str, str]:
        """Unmodeled parameters read alongside this config (copy)."""
        return dict(self._residual)


class CertificateKind(StrEnum):
    SMTP = "smtp"      # client certificate for outbound relay
    SMTPD = "smtpd"    # server certificate for inbound connections


class CertificateInfo(BaseModel):
    kind: CertificateKind
    cert_file: str
    key_file: str
    valid_from: datetime.datetime | None = None
    valid_to: datetime.datetime | None = None
    subject: str = ""
    issuer: str = ""


class VersionStatus(StrEnum):
    DRAFT = "draft"
    APPLIED = "applied"
    ROLLED_BACK = "rolled_back"
    SUPERSEDED = "superseded"


class ConfigVersion(BaseModel):
    """Snapshot of the full parameter map recorded per apply."""

    version_number: int
    content: dict[str, str] = Field(default_factory=dict)
    status: VersionStatus = VersionStatus.DRAFT
    author: str = ""
    notes: str = ""
    created_at: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.UTC),
    )
    applied_at: datetime.datetime | None = None
