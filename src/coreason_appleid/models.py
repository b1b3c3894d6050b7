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
Data models for the coreason-appleid package.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class GrantType(StrEnum):
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"


class JWKEntry(BaseModel):
    """
    A single RSA public key published by the provider.

    Attributes:
        kid (str): The key identifier referenced by token headers.
        kty (str | None): The key type. Only "RSA" is usable for verification.
        n (str | None): The base64url-encoded modulus.
        e (str | None): The base64url-encoded public exponent.
        alg (str | None): The algorithm the key is intended for (e.g. "RS256").
        use (str | None): The intended use (e.g. "sig").
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    kid: str
    # Checked when the key is parsed, so a bad entry is reported by kid
    kty: str | None = None
    n: str | None = None
    e: str | None = None
    alg: str | None = None
    use: str | None = None


class JWKSet(BaseModel):
    """The provider's published key set (`{"keys": [...]}`)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    keys: list[JWKEntry] = Field(default_factory=list)


class IdentityClaims(BaseModel):
    """
    Claims asserted by the provider inside the identity token.

    Only `sub` is required. Provider attributes that are not modelled here are kept
    as extra fields so nothing the provider asserts is lost.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    sub: str = Field(..., description="The unique, stable identifier of the user.")
    iss: str | None = None
    aud: str | list[str] | None = None
    # NumericDate values may carry a fractional part
    iat: int | float | None = None
    exp: int | float | None = None
    auth_time: int | float | None = None
    email: str | None = Field(default=None, description="May be a private relay address.")
    email_verified: bool = False
    is_private_email: bool = False
    nonce: str | None = None
    nonce_supported: bool | None = None
    real_user_status: int | None = None
    at_hash: str | None = None
    c_hash: str | None = None
    transfer_sub: str | None = None

    @field_validator("email_verified", "is_private_email", "nonce_supported", mode="before")
    @classmethod
    def parse_string_bool(cls, v: Any) -> Any:
        """The provider sends these flags either as JSON booleans or as "true"/"false" strings."""
        if isinstance(v, str):
            return v.strip().lower() == "true"
        return v


class TokenResponse(BaseModel):
    """
    The provider's success payload for a token request.

    Attributes:
        access_token (str): Token for accessing provider APIs on behalf of the user.
        token_type (str): The type of the access token (e.g. "bearer").
        expires_in (int): Lifetime of the access token in seconds.
        refresh_token (str | None): Token usable to obtain new access tokens.
        id_token (str | None): The signed identity token.
        user_identity (IdentityClaims | None): Verified identity, populated by `authenticate`.
    """

    access_token: str
    token_type: str
    expires_in: int
    refresh_token: str | None = None
    id_token: str | None = None
    user_identity: IdentityClaims | None = None


class ErrorResponse(BaseModel):
    """The provider's failure payload for a token request."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    error: str
    error_description: str | None = None


class GrantParameters(BaseModel):
    """
    Parameters for a single token exchange.

    An authorization code grant requires `code`; a refresh grant requires `refresh_token`.
    """

    model_config = ConfigDict(frozen=True)

    grant_type: GrantType
    code: str | None = None
    redirect_uri: str | None = None
    refresh_token: str | None = None

    @model_validator(mode="after")
    def check_grant_value(self) -> "GrantParameters":
        if self.grant_type == GrantType.AUTHORIZATION_CODE and not self.code:
            raise ValueError("An authorization_code grant requires 'code'.")
        if self.grant_type == GrantType.REFRESH_TOKEN and not self.refresh_token:
            raise ValueError("A refresh_token grant requires 'refresh_token'.")
        return self

    def form_fields(self) -> dict[str, str]:
        """Returns the grant-specific form fields of the token request."""
        if self.grant_type == GrantType.AUTHORIZATION_CODE:
            return {"code": self.code or "", "redirect_uri": self.redirect_uri or ""}
        return {"refresh_token": self.refresh_token or ""}
