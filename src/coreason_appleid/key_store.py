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
KeyStore component caching the provider's public keys by key identifier.
"""

import threading
from collections.abc import Awaitable, Callable, Mapping
from types import MappingProxyType

from authlib.jose import RSAKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from pydantic import BaseModel, ConfigDict

from coreason_appleid.exceptions import KeyParseError, UnknownKeyError
from coreason_appleid.models import JWKEntry, JWKSet
from coreason_appleid.utils.logger import logger

RefreshHook = Callable[[], Awaitable[JWKSet]]


class PublicKeyEntry(BaseModel):
    """An RSA public key from the provider's key set. Immutable once stored."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kid: str
    alg: str | None = None
    public_key: RSAPublicKey


def parse_entry(entry: JWKEntry) -> PublicKeyEntry:
    """
    Reconstructs the RSA public key of a key set entry.

    Raises:
        KeyParseError: If the entry is not an RSA key or its modulus/exponent are missing or malformed.
    """
    if entry.kty != "RSA":
        raise KeyParseError(
            f"Key '{entry.kid}' has unsupported type '{entry.kty}'; only RSA keys are accepted.", kid=entry.kid
        )
    if not entry.n or not entry.e:
        raise KeyParseError(f"Key '{entry.kid}' is missing its RSA modulus or exponent.", kid=entry.kid)

    try:
        rsa_key = RSAKey.import_key({"kty": entry.kty, "n": entry.n, "e": entry.e})
        public_key = rsa_key.get_public_key()
    except (ValueError, TypeError) as e:
        raise KeyParseError(f"Malformed RSA components for key '{entry.kid}': {e}", kid=entry.kid) from e

    return PublicKeyEntry(kid=entry.kid, alg=entry.alg, public_key=public_key)


class KeyStore:
    """
    Caches the provider's verification keys, keyed by `kid`.

    The mapping is replaced wholesale (copy-and-swap) and never mutated in place, so readers
    always see exactly one fetched generation. A lookup miss triggers a single refresh through
    `refresh_hook` followed by a single retry.

    Safe to share across threads and event loops. Concurrent misses each perform their own
    refresh; the last replacement wins.
    """

    def __init__(self, refresh_hook: RefreshHook | None = None, key_set: JWKSet | None = None) -> None:
        """
        Initialize the KeyStore.

        Args:
            refresh_hook: Async callable returning the current key set, invoked on a lookup miss.
            key_set: Optional key set to seed the cache with.
        """
        self.refresh_hook = refresh_hook
        self._keys: Mapping[str, PublicKeyEntry] = MappingProxyType({})
        self._write_lock = threading.Lock()
        if key_set is not None:
            self.replace_all(key_set)

    def replace_all(self, key_set: JWKSet) -> None:
        """
        Atomically replaces the cached keys with `key_set`.

        All entries are parsed before the swap; on any failure the previous mapping is kept.

        Raises:
            KeyParseError: If any entry is malformed. Every offending `kid` is reported in `failed_kids`.
        """
        fresh: dict[str, PublicKeyEntry] = {}
        failures: list[KeyParseError] = []
        for entry in key_set.keys:
            try:
                fresh[entry.kid] = parse_entry(entry)
            except KeyParseError as e:
                failures.append(e)

        if failures:
            failed_kids = [e.kid for e in failures if e.kid]
            details = "; ".join(str(e) for e in failures)
            raise KeyParseError(
                f"Key set rejected, {len(failures)} malformed entry(s): {details}",
                kid=failed_kids[0] if failed_kids else None,
                failed_kids=failed_kids,
            ) from failures[0]

        with self._write_lock:
            self._keys = MappingProxyType(fresh)

        logger.debug(f"Key store replaced with {len(fresh)} key(s): {sorted(fresh)}")

    def get(self, kid: str) -> PublicKeyEntry | None:
        """Returns the cached entry for `kid` without refreshing."""
        return self._keys.get(kid)

    async def lookup(self, kid: str, refresh_hook: RefreshHook | None = None) -> PublicKeyEntry:
        """
        Returns the key for `kid`, refreshing the key set once on a miss.

        Args:
            kid: The key identifier from the token header.
            refresh_hook: Overrides the store's own hook for this lookup. Lets clients bound to
                different HTTP clients share one store.

        Raises:
            UnknownKeyError: If the key is absent after the refresh, or no refresh hook is set.
            KeySetError: If the refresh fails to fetch the key set.
            KeyParseError: If the refreshed key set is malformed.
        """
        entry = self.get(kid)
        if entry is not None:
            return entry

        hook = refresh_hook or self.refresh_hook
        if hook is None:
            raise UnknownKeyError(f"Unknown signing key '{kid}'.", kid=kid)

        logger.info(f"Key '{kid}' not cached, refreshing key set")
        key_set = await hook()
        self.replace_all(key_set)

        entry = self.get(kid)
        if entry is None:
            logger.warning(f"Key '{kid}' not present in the refreshed key set")
            raise UnknownKeyError(f"Unknown signing key '{kid}'.", kid=kid)
        return entry

    def kids(self) -> list[str]:
        return sorted(self._keys)

    def __contains__(self, kid: object) -> bool:
        return kid in self._keys

    def __len__(self) -> int:
        return len(self._keys)
