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
AppleIdClient orchestrating Sign in with Apple authentication.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, TypeVar
from urllib.parse import urlencode

import anyio
import httpx
from opentelemetry import trace
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_appleid.config import AppleIdConfig
from coreason_appleid.credentials import CredentialManager
from coreason_appleid.exceptions import DeadlineExceededError, MalformedTokenError
from coreason_appleid.exchange import TokenExchangeClient
from coreason_appleid.identity import IdentityExtractor
from coreason_appleid.key_store import KeyStore
from coreason_appleid.models import GrantParameters, GrantType, IdentityClaims, JWKSet, TokenResponse
from coreason_appleid.signature import SignatureGenerator
from coreason_appleid.utils.logger import logger
from coreason_appleid.verifier import TokenVerifier

tracer = trace.get_tracer(__name__)

T = TypeVar("T")

AUTHORIZE_SCOPE = "name email"


@asynccontextmanager
async def deadline(timeout: float | None) -> AsyncIterator[None]:
    """
    Bounds the enclosed block by `timeout` seconds (no bound when None).

    Raises:
        DeadlineExceededError: If the deadline fires first.
    """
    if timeout is None:
        yield
        return
    try:
        with anyio.fail_after(timeout):
            yield
    except TimeoutError as e:
        raise DeadlineExceededError(f"Operation did not complete within {timeout}s") from e


def load_configured_credential(credentials: CredentialManager, config: AppleIdConfig) -> None:
    """Loads the credential named by the configuration, if any and if not already loaded."""
    if credentials.is_loaded:
        return
    if config.private_key is not None:
        credentials.load_bytes(config.private_key.get_secret_value().encode("utf-8"))
    elif config.private_key_path is not None:
        credentials.load_file(config.private_key_path)


def build_callback_url(config: AppleIdConfig, state: str) -> str:
    """
    Returns the authorization URL the frontend redirects the user to.

    Args:
        config: The configuration object.
        state: Opaque value (e.g. the session ID) echoed back on the redirect, used to verify the sender.
    """
    query = urlencode(
        {
            "response_type": "code",
            "redirect_uri": config.redirect_uri,
            "client_id": config.client_id,
            "state": state,
            "scope": AUTHORIZE_SCOPE,
        }
    )
    return f"{config.authorize_url}?{query}"


def sign_client_secret(
    generator: SignatureGenerator, credentials: CredentialManager, config: AppleIdConfig
) -> str:
    """
    Signs a fresh client assertion for the token endpoint.

    Raises:
        MissingCredentialError: If no signing credential is loaded.
        SigningError: If the credential cannot sign the assertion.
    """
    return generator.sign(
        credentials.require(),
        team_id=config.team_id,
        client_id=config.client_id,
        key_id=config.key_id,
        ttl_seconds=config.token_ttl,
    )


class AppleIdClient:
    """
    Async client for Sign in with Apple (The Core).
    Handles resources via async context manager.

    Identity tokens checked by `validate_token` and `authenticate` must carry `iss` equal to
    `config.issuer` and `aud` equal to `config.client_id`, in addition to a valid signature
    and, when present, unexpired `exp` and reached `nbf`. Tokens missing either claim are
    rejected with `InvalidClaimsError`.
    """

    def __init__(
        self,
        config: AppleIdConfig,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        key_store: KeyStore | None = None,
        credentials: CredentialManager | None = None,
    ) -> None:
        """
        Initialize the AppleIdClient.

        Args:
            config: The configuration object.
            client: External async client (optional). If not provided, one is created and owned.
            transport: Transport for the internally created client (ignored when `client` is given).
            key_store: Shared key store (optional). Defaults to a private store seeded from `config.public_keys`.
            credentials: Shared credential manager (optional). The configured key is loaded into it if empty.
        """
        self.config = config
        self._internal_client = client is None

        if client:
            self._client = client
        else:
            self._client = httpx.AsyncClient(transport=transport, timeout=self.config.http_timeout)
            # Instrument the client for distributed tracing
            HTTPXClientInstrumentor().instrument_client(self._client)

        self.credentials = credentials if credentials is not None else CredentialManager()
        load_configured_credential(self.credentials, self.config)

        self.signature_generator = SignatureGenerator()
        self.exchange_client = TokenExchangeClient(
            client=self._client,
            client_id=self.config.client_id,
            token_url=self.config.token_url,
            keys_url=self.config.keys_url,
            assertion_factory=self.client_secret,
        )

        self.key_store = key_store if key_store is not None else KeyStore(key_set=self.config.public_keys)
        self.verifier = TokenVerifier(
            key_store=self.key_store,
            refresh_hook=self.exchange_client.fetch_key_set,
            allowed_algorithms=self.config.allowed_algorithms,
            issuer=self.config.issuer,
            audience=self.config.client_id,
            leeway=self.config.clock_skew_leeway,
            pii_salt=self.config.pii_salt,
        )
        self.identity_extractor = IdentityExtractor()

    async def __aenter__(self) -> "AppleIdClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()

    def load_credential_bytes(self, data: bytes) -> None:
        """Loads the `.p8` signing key from bytes."""
        self.credentials.load_bytes(data)

    def load_credential_file(self, path: str | Path) -> None:
        """Loads the `.p8` signing key from a file."""
        self.credentials.load_file(path)

    def client_secret(self) -> str:
        """Signs a fresh client assertion. See `sign_client_secret`."""
        return sign_client_secret(self.signature_generator, self.credentials, self.config)

    def create_callback_url(self, state: str) -> str:
        """Returns the authorization URL for `state`. See `build_callback_url`."""
        return build_callback_url(self.config, state)

    def set_public_keys(self, key_set: JWKSet) -> None:
        """
        Replaces the cached verification keys.

        Raises:
            KeyParseError: If any entry is malformed; the cache is left untouched.
        """
        self.key_store.replace_all(key_set)

    async def fetch_public_keys(self) -> JWKSet:
        """Fetches the provider's current key set without touching the cache."""
        return await self.exchange_client.fetch_key_set()

    async def validate_token(self, token: str) -> None:
        """Verifies an identity token. See `TokenVerifier.verify`."""
        await self.verifier.verify(token)

    def parse_user_identity(self, token: str) -> IdentityClaims:
        """Decodes an identity token's claims without verifying it. See `IdentityExtractor`."""
        return self.identity_extractor.extract_identity(token)

    async def authenticate(self, auth_code: str, timeout: float | None = None) -> TokenResponse:
        """
        Exchanges an authorization code and returns the verified tokens and identity.

        Args:
            auth_code: The authorization code delivered to the redirect URI.
            timeout: Optional deadline in seconds for the whole operation.

        Returns:
            TokenResponse: The provider tokens with `user_identity` populated.

        Raises:
            MissingCredentialError: If no signing credential is loaded (no request is sent).
            ProviderError: If the provider rejects the code.
            InvalidTokenError: If the returned identity token fails verification.
            DeadlineExceededError: If `timeout` elapses.
        """
        self.credentials.require()

        with tracer.start_as_current_span("authenticate"):
            async with deadline(timeout):
                grant = GrantParameters(
                    grant_type=GrantType.AUTHORIZATION_CODE,
                    code=auth_code,
                    redirect_uri=self.config.redirect_uri,
                )
                token = await self.exchange_client.exchange(grant)
                if not token.id_token:
                    raise MalformedTokenError("Token response does not contain an id_token.")

                await self.verifier.verify(token.id_token)
                identity = self.identity_extractor.extract_identity(token.id_token)

        logger.info("Authorization code exchanged and identity verified")
        return token.model_copy(update={"user_identity": identity})

    async def refresh(self, refresh_token: str, timeout: float | None = None) -> TokenResponse:
        """
        Exchanges a refresh token for a new access token.

        The identity token of a refresh response is neither verified nor decoded.

        Raises:
            MissingCredentialError: If no signing credential is loaded (no request is sent).
            ProviderError: If the provider rejects the refresh token.
            DeadlineExceededError: If `timeout` elapses.
        """
        self.credentials.require()

        with tracer.start_as_current_span("refresh"):
            async with deadline(timeout):
                grant = GrantParameters(grant_type=GrantType.REFRESH_TOKEN, refresh_token=refresh_token)
                return await self.exchange_client.exchange(grant)


class AppleIdClientSync:
    """
    Blocking facade over `AppleIdClient`.

    Every call runs on the caller's thread through `anyio.run` with its own HTTP client.
    The key store and the credential are shared by all calls and threads.
    Must not be called from inside a running event loop.
    """

    def __init__(self, config: AppleIdConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """
        Initialize the AppleIdClientSync.

        Args:
            config: The configuration object.
            transport: Transport for the per-call HTTP clients (optional).
        """
        self.config = config
        self._transport = transport
        self.key_store = KeyStore(key_set=self.config.public_keys)
        self.credentials = CredentialManager()
        load_configured_credential(self.credentials, self.config)
        self.signature_generator = SignatureGenerator()
        self.identity_extractor = IdentityExtractor()

    def __enter__(self) -> "AppleIdClientSync":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        pass

    def _run(self, operation: Callable[[AppleIdClient], Awaitable[T]]) -> T:
        async def runner() -> T:
            async with AppleIdClient(
                self.config, transport=self._transport, key_store=self.key_store, credentials=self.credentials
            ) as client:
                return await operation(client)

        return anyio.run(runner)

    def load_credential_bytes(self, data: bytes) -> None:
        self.credentials.load_bytes(data)

    def load_credential_file(self, path: str | Path) -> None:
        self.credentials.load_file(path)

    def client_secret(self) -> str:
        return sign_client_secret(self.signature_generator, self.credentials, self.config)

    def create_callback_url(self, state: str) -> str:
        return build_callback_url(self.config, state)

    def set_public_keys(self, key_set: JWKSet) -> None:
        self.key_store.replace_all(key_set)

    def parse_user_identity(self, token: str) -> IdentityClaims:
        return self.identity_extractor.extract_identity(token)

    def fetch_public_keys(self) -> JWKSet:
        return self._run(lambda client: client.fetch_public_keys())

    def validate_token(self, token: str) -> None:
        self._run(lambda client: client.validate_token(token))

    def authenticate(self, auth_code: str, timeout: float | None = None) -> TokenResponse:
        return self._run(lambda client: client.authenticate(auth_code, timeout=timeout))

    def refresh(self, refresh_token: str, timeout: float | None = None) -> TokenResponse:
        return self._run(lambda client: client.refresh(refresh_token, timeout=timeout))
