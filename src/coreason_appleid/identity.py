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
IdentityExtractor component decoding identity claims from a signed token.
"""

from pydantic import ValidationError

from coreason_appleid.compact import decode_segment, split_token
from coreason_appleid.exceptions import MalformedTokenError
from coreason_appleid.models import IdentityClaims


class IdentityExtractor:
    """
    Decodes the payload of an identity token into `IdentityClaims`.

    No signature check is performed. Run `TokenVerifier.verify` first whenever the identity
    feeds a security decision.
    """

    def extract_identity(self, token: str) -> IdentityClaims:
        """
        Args:
            token: A compact token with at least header and payload segments.

        Returns:
            IdentityClaims: The decoded claims.

        Raises:
            MalformedTokenError: If the token has fewer than two segments, the payload cannot be
                decoded, or it lacks the `sub` claim.
        """
        payload = decode_segment(split_token(token, 2)[1])
        try:
            return IdentityClaims.model_validate(payload)
        except ValidationError as e:
            raise MalformedTokenError(f"Token payload is not a valid identity: {e}") from e
