"""Relay control plane for a relay-only Postfix MTA."""

__version__ = "0.1.0"
