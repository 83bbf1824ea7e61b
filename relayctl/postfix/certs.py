"""PEM certificate and private-key validation."""

from __future__ import annotations

import re

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from relayctl.core.exceptions import ValidationError

VALID_KEY_TYPES = ("RSA PRIVATE KEY", "EC PRIVATE KEY", "PRIVATE KEY")

_PEM_BEGIN = re.compile(rb"-----BEGIN ([A-Z0-9 ]+)-----")


def parse_certificate(data: bytes) -> x509.Certificate:
    """Load the first PEM X.509 certificate in *data*."""
    if b"-----BEGIN CERTIFICATE-----" not in data:
        raise ValidationError("invalid certificate: failed to parse PEM block")
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as exc:
        raise ValidationError(f"invalid certificate: {exc}") from exc


def validate_private_key(data: bytes) -> str:
    """Check that *data* is a loadable, unencrypted PEM private key of a recognized type.

    Returns:
        The PEM block type, e.g. ``"RSA PRIVATE KEY"``.
    """
    match = _PEM_BEGIN.search(data)
    if match is None:
        raise ValidationError("invalid private key: failed to parse PEM block")
    block_type = match.group(1).decode("ascii")
    if block_type not in VALID_KEY_TYPES:
        raise ValidationError(f"invalid private key: invalid key type: {block_type}")
    try:
        serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ValidationError(f"invalid private key: {exc}") from exc
    return block_type
