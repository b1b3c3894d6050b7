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
TokenExchangeClient component for the provider's token and key set endpoints.
"""

from collections.abc import Callable
from typing import Any

import httpx
from opentelemetry import trace
from pydantic import ValidationError

from coreason_appleid.exceptions import (
    KeyEndpointUnavailableError,
    KeyFetchError,
    MalformedResponseError,
    ProviderError,
)
from coreason_appleid.models import ErrorResponse, GrantParameters, JWKSet, TokenResponse
from coreason_appleid.utils.logger import logger

tracer = trace.get_tracer(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class TokenExchangeClient:
    """
    Trades authorization codes and refresh tokens for provider tokens, and fetches the key set.

    Attributes:
        client_id (str): The Services ID sent with every token request.
        token_url (str): The provider's token endpoint.
        keys_url (str): The provider's public key set endpoint.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        client_id: str,
        token_url: str,
        keys_url: str,
        assertion_factory: Callable[[], str],
    ) -> None:
        """
        Initialize the TokenExchangeClient.

        Args:
            client: The async HTTP client to use for requests.
            client_id: The Services ID.
            token_url: URL of the token endpoint.
            keys_url: URL of the key set endpoint.
            assertion_factory: Returns a freshly signed client assertion; called once per exchange.
        """
        self.client = client
        self.client_id = client_id
        self.token_url = token_url
        self.keys_url = keys_url
        self.assertion_factory = assertion_factory

    async def exchange(self, grant: GrantParameters) -> TokenResponse:
        """
        Posts a token request for `grant`.

        Transport and cancellation errors from httpx/anyio are not wrapped.

        Args:
            grant: The grant type and its code or refresh token.

        Returns:
            TokenResponse: The provider's success payload.

        Raises:
            ProviderError: If the provider answers with a non-success status.
            MalformedResponseError: If the response body cannot be decoded.
        """
        with tracer.start_as_current_span("token_exchange") as span:
            span.set_attribute("oauth.grant_type", grant.grant_type.value)

            form = {
                "client_id": self.client_id,
                "client_secret": self.assertion_factory(),
                "grant_type": grant.grant_type.value,
                **grant.form_fields(),
            }
            response = await self.client.post(
                self.token_url,
                data=form,
                headers={"Content-Type": FORM_CONTENT_TYPE, "Accept": "application/json"},
            )
            span.set_attribute("http.status_code", response.status_code)

            if response.status_code != 200:
                try:
                    error = ErrorResponse.model_validate(self._json(response))
                except ValidationError as e:
                    raise MalformedResponseError(
                        f"Invalid error response with status {response.status_code}: {e}"
                    ) from e
                logger.warning(f"Token request rejected ({response.status_code}): {error.error}")
                raise ProviderError(error, response.status_code)

            try:
                token = TokenResponse.model_validate(self._json(response))
            except ValidationError as e:
                raise MalformedResponseError(f"Invalid token response: {e}") from e

            logger.info(f"Token request succeeded for grant {grant.grant_type.value}")
            return token

    async def fetch_key_set(self) -> JWKSet:
        """
        Fetches the provider's public key set.

        Returns:
            JWKSet: The published keys.

        Raises:
            KeyEndpointUnavailableError: If the endpoint cannot be reached.
            KeyFetchError: If the endpoint answers with a non-success status or an invalid body.
        """
        with tracer.start_as_current_span("fetch_key_set"):
            try:
                response = await self.client.get(self.keys_url, headers={"Accept": "application/json"})
            except httpx.TransportError as e:
                logger.error(f"Key set endpoint unavailable: {e}")
                raise KeyEndpointUnavailableError(f"Failed to reach {self.keys_url}: {e}") from e

            if response.status_code != 200:
                raise KeyFetchError(
                    f"Key set endpoint returned status {response.status_code}", status_code=response.status_code
                )

            try:
                key_set = JWKSet.model_validate(response.json())
            except ValueError as e:
                raise KeyFetchError(f"Invalid key set from {self.keys_url}: {e}", status_code=200) from e

            logger.debug(f"Fetched {len(key_set.keys)} key(s) from {self.keys_url}")
            return key_set

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Provider returned a non-JSON body with status {response.status_code}"
            ) from e
