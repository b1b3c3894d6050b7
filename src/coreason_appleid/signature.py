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
SignatureGenerator component producing the ES256 client assertion ("client secret").
"""

import time

from authlib.jose import JsonWebToken
from authlib.jose.errors import JoseError
from cryptography.hazmat.primitives.asymmetric import ec
from pydantic import BaseModel, ConfigDict

from coreason_appleid.config import DEFAULT_TOKEN_TTL, MAX_TOKEN_TTL
from coreason_appleid.credentials import KeyAlgorithm, SigningCredential
from coreason_appleid.exceptions import SigningError

APPLE_AUDIENCE = "https://appleid.apple.com"
ASSERTION_ALGORITHM = "ES256"


class ClientAssertionClaims(BaseModel):
    """
    Claims of the client assertion.

    Attributes:
        iss (str): The team identifier.
        iat (int): Issued-at, seconds since the epoch.
        exp (int): Expiry, `iat` plus the configured time-to-live.
        aud (str): Always the provider identifier.
        sub (str): The client identifier.
    """

    model_config = ConfigDict(frozen=True)

    iss: str
    iat: int
    exp: int
    aud: str = APPLE_AUDIENCE
    sub: str


class SignatureGenerator:
    """
    Builds short-lived client assertions signed with the service's EC P-256 key.

    Every call signs a new assertion; nothing is cached.
    """

    def __init__(self) -> None:
        self.jwt = JsonWebToken([ASSERTION_ALGORITHM])

    def build_claims(
        self, team_id: str, client_id: str, ttl_seconds: int, now: int | None = None
    ) -> ClientAssertionClaims:
        issued_at = int(time.time()) if now is None else now
        return ClientAssertionClaims(iss=team_id, iat=issued_at, exp=issued_at + ttl_seconds, sub=client_id)

    def sign(
        self,
        credential: SigningCredential,
        team_id: str,
        client_id: str,
        key_id: str,
        ttl_seconds: int = DEFAULT_TOKEN_TTL,
    ) -> str:
        """
        Signs a fresh client assertion.

        Args:
            credential: The loaded signing credential.
            team_id: The Apple Developer Team ID.
            client_id: The Services ID the assertion authenticates.
            key_id: The identifier of the key registered with the provider.
            ttl_seconds: Lifetime of the assertion in seconds.

        Returns:
            str: The compact ES256-signed assertion.

        Raises:
            SigningError: If the TTL is out of range or the credential cannot produce an ES256 signature.
        """
        if not 0 < ttl_seconds <= MAX_TOKEN_TTL:
            raise SigningError(f"Assertion TTL must be between 1 and {MAX_TOKEN_TTL} seconds, got {ttl_seconds}.")

        if credential.algorithm != KeyAlgorithm.EC or not isinstance(credential.private_key.curve, ec.SECP256R1):
            raise SigningError(f"{ASSERTION_ALGORITHM} requires a P-256 key, got {credential.curve_name}.")

        claims = self.build_claims(team_id, client_id, ttl_seconds)
        header = {"kid": key_id, "alg": ASSERTION_ALGORITHM}

        try:
            signed = self.jwt.encode(header, claims.model_dump(), credential.private_key)
        except (JoseError, ValueError, TypeError) as e:
            raise SigningError(f"Failed to sign client assertion: {e}") from e

        return signed.decode("ascii")
