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
TokenVerifier component for validating identity token signatures and claims.
"""

from typing import Any

from authlib.jose import JsonWebToken
from authlib.jose.errors import (
    BadSignatureError,
    DecodeError,
    ExpiredTokenError,
    InvalidClaimError,
    JoseError,
    MissingClaimError,
    UnsupportedAlgorithmError,
)
from authlib.jose.errors import InvalidTokenError as JoseInvalidTokenError
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from coreason_appleid.compact import decode_header
from coreason_appleid.exceptions import (
    AppleIdError,
    InvalidClaimsError,
    InvalidSignatureError,
    InvalidTokenError,
    MalformedTokenError,
    TokenExpiredError,
)
from coreason_appleid.key_store import KeyStore, RefreshHook
from coreason_appleid.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)


class TokenVerifier:
    """
    Verifies identity tokens against the provider's key set.

    Attributes:
        key_store (KeyStore): Source of verification keys, refreshed on a `kid` miss.
        refresh_hook (RefreshHook | None): Key set fetcher used on a miss; defaults to the store's own hook.
        allowed_algorithms (list[str]): Signature algorithms accepted in token headers.
        issuer (str | None): Expected `iss`, checked when set.
        audience (str | None): Expected `aud`, checked when set.
        leeway (int): Acceptable clock skew in seconds for `exp` and `nbf`.
    """

    def __init__(
        self,
        key_store: KeyStore,
        refresh_hook: RefreshHook | None = None,
        allowed_algorithms: list[str] | None = None,
        issuer: str | None = None,
        audience: str | None = None,
        leeway: int = 0,
        pii_salt: SecretStr | None = None,
    ) -> None:
        self.key_store = key_store
        self.refresh_hook = refresh_hook
        self.allowed_algorithms = allowed_algorithms or ["RS256"]
        self.issuer = issuer
        self.audience = audience
        self.leeway = leeway
        self.pii_salt = pii_salt or SecretStr("coreason-unsafe-default-salt")
        # Restricting the instance to the allow-list rejects any other `alg`, including "none"
        self.jwt = JsonWebToken(self.allowed_algorithms)

    def _claims_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "exp": {"essential": False},
            "nbf": {"essential": False},
        }
        if self.issuer:
            options["iss"] = {"essential": True, "value": self.issuer}
        if self.audience:
            options["aud"] = {"essential": True, "value": self.audience}
        return options

    async def verify(self, token: str) -> None:
        """
        Verifies the signature and standard claims of `token`.

        Emits an OpenTelemetry span `verify_token`.

        Args:
            token: The compact signed identity token.

        Raises:
            MalformedTokenError: If the token is not three segments or the header lacks a string `kid`.
            UnknownKeyError: If the `kid` is not in the key set after one refresh.
            InvalidSignatureError: If the signature does not verify or the algorithm is not allowed.
            TokenExpiredError: If the token has expired.
            InvalidClaimsError: If issuer, audience or not-before checks fail.
            KeySetError: If refreshing the key set fails.
        """
        with tracer.start_as_current_span("verify_token") as span:
            token = token.strip()
            kid: Any = None
            try:
                header = decode_header(token)
                kid = header.get("kid")
                if not isinstance(kid, str) or not kid:
                    raise MalformedTokenError("Token header has no string 'kid'.")
                span.set_attribute("jwt.kid", kid)

                entry = await self.key_store.lookup(kid, refresh_hook=self.refresh_hook)

                claims = self.jwt.decode(token, entry.public_key, claims_options=self._claims_options())
                claims.validate(leeway=self.leeway)

            except ExpiredTokenError as e:
                logger.warning("Verification failed: Token expired")
                self._record(span, e)
                raise TokenExpiredError(f"Token has expired: {e}") from e
            except (InvalidClaimError, MissingClaimError, JoseInvalidTokenError) as e:
                logger.warning(f"Verification failed: Invalid claims ({e})")
                self._record(span, e)
                raise InvalidClaimsError(f"Invalid claims: {e}") from e
            except (BadSignatureError, UnsupportedAlgorithmError) as e:
                logger.error(f"Verification failed: Bad signature ({e})")
                self._record(span, e)
                raise InvalidSignatureError(f"Invalid signature: {e}") from e
            except DecodeError as e:
                logger.warning(f"Verification failed: Undecodable token ({e})")
                self._record(span, e)
                raise MalformedTokenError(f"Malformed token: {e}") from e
            except JoseError as e:
                logger.error(f"Verification failed: JOSE error ({e})")
                self._record(span, e)
                raise InvalidTokenError(f"Token verification failed: {e}") from e
            except ValueError as e:
                # authlib raises ValueError when the resolved key cannot serve the header's algorithm
                logger.error(f"Verification failed: Key unusable for token ({e})")
                self._record(span, e)
                raise InvalidSignatureError(f"Key '{kid}' cannot verify this token: {e}") from e
            except AppleIdError as e:
                self._record(span, e)
                raise

            user_hash = anonymize(str(claims.get("sub", "unknown")), self.pii_salt.get_secret_value())
            logger.info(f"Token verified for user {user_hash}")
            span.set_attribute("enduser.id", user_hash)
            span.set_status(Status(StatusCode.OK))

    @staticmethod
    def _record(span: trace.Span, exc: Exception) -> None:
        span.record_exception(exc)
        span.set_status(Status(StatusCode.ERROR, str(exc)))
