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
Custom exceptions for the coreason-appleid package.
"""

from coreason_appleid.models import ErrorResponse


class AppleIdError(Exception):
    """Base exception for all coreason-appleid errors."""


class CredentialError(AppleIdError):
    """Raised for problems with the service's signing credential."""


class CredentialFormatError(CredentialError):
    """Raised when the PEM envelope around the private key cannot be decoded."""


class CredentialIOError(CredentialError):
    """Raised when the credential file cannot be read."""


class MissingCredentialError(CredentialError):
    """Raised when a signing operation is attempted before a credential is loaded."""


class SigningError(CredentialError):
    """Raised when the client assertion cannot be signed with the loaded credential."""


class KeyParseError(AppleIdError):
    """
    Raised when key material cannot be parsed.

    Covers both the service's private key (PKCS#8) and entries of the provider's
    public key set. `kid` names the first offending key set entry when known;
    `failed_kids` lists every entry that failed.
    """

    def __init__(self, message: str, kid: str | None = None, failed_kids: list[str] | None = None) -> None:
        super().__init__(message)
        self.kid = kid
        self.failed_kids = failed_kids if failed_kids is not None else ([kid] if kid else [])


class KeySetError(AppleIdError):
    """Base exception for failures retrieving the provider's public key set."""


class KeyEndpointUnavailableError(KeySetError):
    """Raised when the key set endpoint cannot be reached."""


class KeyFetchError(KeySetError):
    """Raised when the key set endpoint answers with a non-success status or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidTokenError(AppleIdError):
    """
    Raised when an identity token fails validation.
    Callers that do not care about the exact reason can `except InvalidTokenError:`.
    """


class MalformedTokenError(InvalidTokenError):
    """Raised when a token is not a well-formed compact signed token."""


class InvalidSignatureError(InvalidTokenError):
    """Raised when the token's signature does not verify."""


class TokenExpiredError(InvalidTokenError):
    """Raised when the provided token has expired."""


class InvalidClaimsError(InvalidTokenError):
    """Raised when the issuer, audience or not-before claims do not match."""


class UnknownKeyError(InvalidTokenError):
    """Raised when the token's `kid` is not in the key set, even after a refresh."""

    def __init__(self, message: str, kid: str | None = None) -> None:
        super().__init__(message)
        self.kid = kid


class ProviderError(AppleIdError):
    """
    The identity provider rejected a token request.

    Carries the provider's machine-readable error code so callers can branch on it
    (e.g. `invalid_grant`) and show the description to end users.
    """

    def __init__(self, response: ErrorResponse, status_code: int) -> None:
        message = response.error
        if response.error_description:
            message = f"{response.error}: {response.error_description}"
        super().__init__(message)
        self.response = response
        self.status_code = status_code

    @property
    def error(self) -> str:
        return self.response.error

    @property
    def error_description(self) -> str | None:
        return self.response.error_description


class MalformedResponseError(AppleIdError):
    """Raised when the provider's token endpoint returns a body that cannot be decoded."""


class DeadlineExceededError(AppleIdError, TimeoutError):
    """Raised when a caller-supplied deadline fires before the operation completes."""
