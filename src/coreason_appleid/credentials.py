# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_appleid

"""
Loading of the service's PKCS#8 signing key (the `.p8` file issued by Apple).
"""

import base64
import binascii
import re
from enum import StrEnum
from pathlib import Path

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from pydantic import BaseModel, ConfigDict

from coreason_appleid.exceptions import (
    CredentialError,
    CredentialFormatError,
    CredentialIOError,
    KeyParseError,
    MissingCredentialError,
)
from coreason_appleid.utils.logger import logger

_PEM_BLOCK = re.compile(rb"-----BEGIN ([A-Z0-9 ]+)-----(.*?)-----END \1-----", re.DOTALL)
_PKCS8_LABEL = "PRIVATE KEY"


class KeyAlgorithm(StrEnum):
    EC = "EC"


class SigningCredential(BaseModel):
    """
    The service's private signing key, tagged with its algorithm family.

    Immutable once loaded. Only elliptic-curve keys are accepted.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    algorithm: KeyAlgorithm
    private_key: ec.EllipticCurvePrivateKey

    @property
    def curve_name(self) -> str:
        return self.private_key.curve.name

    def __repr__(self) -> str:
        # Key material MUST NOT leak through repr
        return f"SigningCredential(algorithm={self.algorithm.value!r}, curve={self.curve_name!r})"

    def __str__(self) -> str:
        return self.__repr__()


def load_credential(data: bytes) -> SigningCredential:
    """
    Loads a signing credential from PEM-encoded PKCS#8 bytes.

    Args:
        data: The contents of a `.p8` file.

    Returns:
        SigningCredential: The parsed elliptic-curve credential.

    Raises:
        CredentialFormatError: If no PEM block is found or its body is not valid base64.
        KeyParseError: If the enclosed structure is not a PKCS#8 elliptic-curve private key.
    """
    match = _PEM_BLOCK.search(data)
    if not match:
        raise CredentialFormatError("No PEM block found in credential data.")

    label = match.group(1).decode("ascii")
    body = b"".join(match.group(2).split())
    try:
        der = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CredentialFormatError(f"PEM body is not valid base64: {e}") from e

    if label != _PKCS8_LABEL:
        raise KeyParseError(f"Expected a PKCS#8 '{_PKCS8_LABEL}' block, got '{label}'.")

    try:
        private_key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyParseError(f"Malformed PKCS#8 private key: {e}") from e

    if not isinstance(private_key, ec.EllipticCurvePrivateKey):
        raise KeyParseError(f"Unsupported private key type {type(private_key).__name__}; an EC key is required.")

    return SigningCredential(algorithm=KeyAlgorithm.EC, private_key=private_key)


def load_credential_file(path: str | Path) -> SigningCredential:
    """
    Reads a `.p8` file and loads it with `load_credential`.

    Raises:
        CredentialIOError: If the file cannot be read.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise CredentialIOError(f"Unable to read credential file {path}: {e}") from e
    return load_credential(data)


class CredentialManager:
    """
    Owns the service's signing credential for the lifetime of a client.

    The credential is loaded at most once; there is no update path.
    """

    def __init__(self, credential: SigningCredential | None = None) -> None:
        self._credential = credential

    @property
    def is_loaded(self) -> bool:
        return self._credential is not None

    def load_bytes(self, data: bytes) -> SigningCredential:
        """Loads the credential from PEM bytes. See `load_credential`."""
        self._ensure_empty()
        self._credential = load_credential(data)
        logger.info(f"Loaded signing credential ({self._credential.curve_name})")
        return self._credential

    def load_file(self, path: str | Path) -> SigningCredential:
        """Loads the credential from a `.p8` file. See `load_credential_file`."""
        self._ensure_empty()
        self._credential = load_credential_file(path)
        logger.info(f"Loaded signing credential ({self._credential.curve_name}) from file")
        return self._credential

    def require(self) -> SigningCredential:
        """
        Returns the loaded credential.

        Raises:
            MissingCredentialError: If no credential has been loaded.
        """
        if self._credential is None:
            raise MissingCredentialError("No signing credential loaded; load the .p8 key first.")
        return self._credential

    def _ensure_empty(self) -> None:
        if self._credential is not None:
            raise CredentialError("A signing credential is already loaded and cannot be replaced.")
