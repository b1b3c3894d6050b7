# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_appleid

import base64
import json
from typing import Any

import pytest
from helpers import identity_claims, make_token

from coreason_appleid.exceptions import MalformedTokenError
from coreason_appleid.identity import IdentityExtractor


def segment(data: Any) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).rstrip(b"=").decode("ascii")


@pytest.fixture
def extractor() -> IdentityExtractor:
    return IdentityExtractor()


def test_extracts_identity(extractor: IdentityExtractor, rsa_key: Any) -> None:
    token = make_token(rsa_key, identity_claims(real_user_status=2))

    identity = extractor.extract_identity(token)

    assert identity.sub == "001234.abcdef.0101"
    assert identity.email == "alice@privaterelay.appleid.com"
    assert identity.email_verified is True
    assert identity.is_private_email is True
    assert identity.real_user_status == 2


def test_boolean_flags_accept_json_booleans(extractor: IdentityExtractor) -> None:
    token = f"{segment({'alg': 'none'})}.{segment({'sub': 'u', 'email_verified': False})}"
    identity = extractor.extract_identity(token)
    assert identity.email_verified is False
    assert identity.email is None


def test_string_false_flag(extractor: IdentityExtractor) -> None:
    token = f"{segment({})}.{segment({'sub': 'u', 'email_verified': 'false'})}"
    assert extractor.extract_identity(token).email_verified is False


def test_fractional_timestamps(extractor: IdentityExtractor) -> None:
    payload = {"sub": "u", "iat": 1700000000.5, "exp": 1700000600, "auth_time": 1699999999.25}
    identity = extractor.extract_identity(f"{segment({})}.{segment(payload)}")
    assert identity.iat == 1700000000.5
    assert identity.exp == 1700000600
    assert isinstance(identity.exp, int)
    assert identity.auth_time == 1699999999.25


def test_unknown_attributes_are_preserved(extractor: IdentityExtractor) -> None:
    token = f"{segment({})}.{segment({'sub': 'u', 'org_id': 'acme'})}"
    identity = extractor.extract_identity(token)
    assert identity.model_extra == {"org_id": "acme"}


def test_signature_is_not_checked(extractor: IdentityExtractor, rsa_key: Any) -> None:
    header, payload, _ = make_token(rsa_key, identity_claims()).split(".")
    identity = extractor.extract_identity(f"{header}.{payload}.forged")
    assert identity.sub == "001234.abcdef.0101"


@pytest.mark.parametrize("token", ["", "single-segment", ".payload-only"])
def test_fewer_than_two_segments(extractor: IdentityExtractor, token: str) -> None:
    with pytest.raises(MalformedTokenError):
        extractor.extract_identity(token)


def test_payload_not_base64(extractor: IdentityExtractor) -> None:
    with pytest.raises(MalformedTokenError):
        extractor.extract_identity("header.***.sig")


def test_payload_not_json(extractor: IdentityExtractor) -> None:
    payload = base64.urlsafe_b64encode(b"not json").rstrip(b"=").decode("ascii")
    with pytest.raises(MalformedTokenError):
        extractor.extract_identity(f"header.{payload}.sig")


def test_payload_not_an_object(extractor: IdentityExtractor) -> None:
    with pytest.raises(MalformedTokenError, match="JSON object"):
        extractor.extract_identity(f"header.{segment(['sub'])}.sig")


def test_payload_without_subject(extractor: IdentityExtractor) -> None:
    with pytest.raises(MalformedTokenError, match="valid identity"):
        extractor.extract_identity(f"header.{segment({'email': 'a@b.c'})}.sig")
