# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_appleid

from typing import Any

import pytest
from authlib.jose import JsonWebKey
from helpers import CLIENT_ID, KEY_ID, TEAM_ID, ec_pem
from pydantic import SecretStr

from coreason_appleid.config import AppleIdConfig
from coreason_appleid.models import JWKSet


@pytest.fixture(scope="session")
def rsa_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True, options={"kid": "k1"})


@pytest.fixture(scope="session")
def rotated_rsa_key() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True, options={"kid": "k2"})


@pytest.fixture
def key_set(rsa_key: Any) -> JWKSet:
    return JWKSet.model_validate({"keys": [rsa_key.as_dict(private=False)]})


@pytest.fixture(scope="session")
def p8_bytes() -> bytes:
    return ec_pem()


@pytest.fixture
def config(p8_bytes: bytes) -> AppleIdConfig:
    return AppleIdConfig(
        team_id=TEAM_ID,
        client_id=CLIENT_ID,
        key_id=KEY_ID,
        redirect_uri="https://app.coreason.ai/callback",
        private_key=SecretStr(p8_bytes.decode("ascii")),
    )


@pytest.fixture
def config_without_key() -> AppleIdConfig:
    return AppleIdConfig(team_id=TEAM_ID, client_id=CLIENT_ID, key_id=KEY_ID)
