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
Shared helpers for building test tokens and credentials.
"""

import time
from typing import Any

from authlib.jose import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

CLIENT_ID = "com.coreason.web"
TEAM_ID = "TEAM123456"
KEY_ID = "KEY1234567"
ISSUER = "https://appleid.apple.com"


def make_token(key: Any, claims: dict[str, Any], headers: dict[str, Any] | None = None) -> str:
    """
    Signs `claims` with the raw private key behind an authlib RSA key.

    The header defaults to the key's kid; `headers` replaces it verbatim, so tests can omit or forge the kid.
    """
    header = {"alg": "RS256", "kid": key.as_dict()["kid"]}
    if headers is not None:
        header = headers
    return jwt.encode(header, claims, key.get_private_key()).decode("utf-8")  # type: ignore[no-any-return]


def identity_claims(**overrides: Any) -> dict[str, Any]:
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": ISSUER,
        "aud": CLIENT_ID,
        "sub": "001234.abcdef.0101",
        "iat": now,
        "exp": now + 600,
        "email": "alice@privaterelay.appleid.com",
        "email_verified": "true",
        "is_private_email": "true",
    }
    claims.update(overrides)
    return claims


def ec_pem(curve: ec.EllipticCurve | None = None) -> bytes:
    private_key = ec.generate_private_key(curve or ec.SECP256R1())
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
