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
Sign in with Apple client: signed client assertions, token exchange and identity token verification.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .client import AppleIdClient, AppleIdClientSync
from .config import AppleIdConfig
from .credentials import CredentialManager, SigningCredential, load_credential, load_credential_file
from .exceptions import (
    AppleIdError,
    InvalidTokenError,
    MissingCredentialError,
    ProviderError,
)
from .identity import IdentityExtractor
from .key_store import KeyStore
from .models import IdentityClaims, JWKSet, TokenResponse
from .signature import SignatureGenerator
from .verifier import TokenVerifier

__all__ = [
    "AppleIdClient",
    "AppleIdClientSync",
    "AppleIdConfig",
    "AppleIdError",
    "CredentialManager",
    "IdentityClaims",
    "IdentityExtractor",
    "InvalidTokenError",
    "JWKSet",
    "KeyStore",
    "MissingCredentialError",
    "ProviderError",
    "SignatureGenerator",
    "SigningCredential",
    "TokenResponse",
    "TokenVerifier",
    "load_credential",
    "load_credential_file",
]
