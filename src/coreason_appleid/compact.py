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
Helpers for reading the segments of a compact signed token (header.payload.signature).
"""

import base64
import binascii
import json
from typing import Any

from coreason_appleid.exceptions import MalformedTokenError


def split_token(token: str, min_segments: int) -> list[str]:
    """
    Splits a compact token on '.' and checks it has at least `min_segments` non-empty leading segments.

    Raises:
        MalformedTokenError: If the token has too few segments.
    """
    parts = token.strip().split(".")
    if len(parts) < min_segments or not all(parts[:min_segments]):
        raise MalformedTokenError(f"Token must have at least {min_segments} segments, got {len(parts)}.")
    return parts


def decode_segment(segment: str) -> dict[str, Any]:
    """
    Decodes a base64url (unpadded) segment holding a JSON object.

    Raises:
        MalformedTokenError: If the segment is not base64url, not JSON, or not a JSON object.
    """
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
        data = json.loads(raw)
    except (binascii.Error, ValueError) as e:
        raise MalformedTokenError(f"Token segment could not be decoded: {e}") from e

    if not isinstance(data, dict):
        raise MalformedTokenError("Token segment is not a JSON object.")
    return data


def decode_header(token: str) -> dict[str, Any]:
    """Returns the decoded JOSE header of a three-segment token."""
    return decode_segment(split_token(token, 3)[0])
