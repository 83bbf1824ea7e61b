"""Postfix module — main.cf store, atomic writes, external tools, apply flow."""

from relayctl.postfix.apply import ConfigApplier
from relayctl.postfix.atomic import AtomicWriter
from relayctl.postfix.locking import DirectoryLock
from relayctl.postfix.parser import parse_main_cf, render_main_cf
from relayctl.postfix.store import ConfigStore
from relayctl.postfix.tools import CommandResult, PostfixTools, SubprocessRunner
from relayctl.postfix.types import (
    CertificateInfo,
    CertificateKind,
    ConfigVersion,
    ManagedConfig,
    VersionStatus,
)
from relayctl.postfix.versions import ConfigHistory, load_history, save_history

__all__ = [
    "AtomicWriter",
    "CertificateInfo",
    "CertificateKind",
    "CommandResult",
    "ConfigApplier",
    "ConfigHistory",
    "ConfigStore",
    "ConfigVersion",
    "DirectoryLock",
    "ManagedConfig",
    "PostfixTools",
    "SubprocessRunner",
    "VersionStatus",
    "load_history",
    "parse_main_cf",
    "render_main_cf",
    "save_history",
]
