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
Configuration for the coreason-appleid package.
"""

from pathlib import Path

from pydantic import Field, SecretStr, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_appleid.models import JWKSet

DEFAULT_TOKEN_TTL = 3600
# Apple rejects client secrets valid for longer than six months.
MAX_TOKEN_TTL = 15777000


class AppleIdConfig(BaseSettings):
    """
    Configuration settings for coreason-appleid.

    Attributes:
        team_id (str): The Apple Developer Team ID, used as the assertion issuer.
        client_id (str): The Services ID (or bundle ID) that has Sign in with Apple enabled.
        key_id (str): The identifier of the private key registered with Apple.
        redirect_uri (str): The redirect URI registered for the web flow.
        private_key (SecretStr | None): Inline PEM-encoded PKCS#8 private key.
        private_key_path (Path | None): Path to the `.p8` private key file.
        token_ttl (int): Lifetime of generated client assertions in seconds.
        http_timeout (float): Timeout in seconds for all provider network operations.
        base_url (str): The provider base URL.
        issuer (str): The expected `iss` claim of identity tokens.
        public_keys (JWKSet | None): Optional pre-seeded key set, bypassing the first remote fetch.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_APPLEID_",
        case_sensitive=False,
    )

    team_id: str
    client_id: str
    key_id: str
    redirect_uri: str = ""
    private_key: SecretStr | None = None
    private_key_path: Path | None = None
    token_ttl: int = Field(DEFAULT_TOKEN_TTL, ge=1, le=MAX_TOKEN_TTL)
    http_timeout: float = Field(10.0, gt=0, description="Timeout in seconds for all provider network operations.")
    unsafe_local_dev: bool = False
    base_url: str = "https://appleid.apple.com"
    issuer: str = "https://appleid.apple.com"
    allowed_algorithms: list[str] = Field(default_factory=lambda: ["RS256"])
    clock_skew_leeway: int = Field(0, ge=0)
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")
    public_keys: JWKSet | None = None

    @field_validator("base_url", mode="after")
    @classmethod
    def validate_https(cls, v: str, info: ValidationInfo) -> str:
        """
        Ensures that the provider URL uses HTTPS, unless strictly opted out for local dev.
        """
        v = v.strip().rstrip("/")
        if v.startswith("http://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an absolute URL, got '{v}'")
        return v

    @field_validator("allowed_algorithms")
    @classmethod
    def validate_algorithms(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one verification algorithm must be allowed.")
        if any(alg.lower() == "none" for alg in v):
            raise ValueError("The 'none' algorithm cannot be allowed.")
        return v

    @model_validator(mode="after")
    def check_key_source(self) -> "AppleIdConfig":
        if self.private_key is not None and self.private_key_path is not None:
            raise ValueError("Configure either 'private_key' or 'private_key_path', not both.")
        return self

    @property
    def authorize_url(self) -> str:
        return f"{self.base_url}/auth/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.base_url}/auth/token"

    @property
    def keys_url(self) -> str:
        return f"{self.base_url}/auth/keys"
