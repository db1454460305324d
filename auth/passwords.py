"""
auth/passwords.py -- One-way password hashing with argon2id.

argon2id is memory-hard: each guess costs memory as well as CPU, which blunts
GPU/ASIC brute force against a leaked table. argon2-cffi salts every hash and
encodes the parameters in the hash string, so verify() keeps working after
the cost parameters are raised.

verify() never raises. A mismatch, a corrupted hash or a hash from another
scheme all come back as False -- the caller treats every one of them as
"wrong password".

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from argon2 import PasswordHasher as _Argon2Hasher
from argon2 import Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

logger = logging.getLogger("questrider.auth")


class PasswordHasher:
    """Hash and verify passwords.

    Usage:
        hasher = PasswordHasher()
        stored = hasher.hash("pw12345678")
        hasher.verify(stored, "pw12345678")   # True
        hasher.verify(stored, "nope")         # False
        hasher.verify("garbage", "nope")      # False, no exception

    The argon2 cost parameters default to argon2-cffi's RFC 9106 low-memory
    profile. Tests pass smaller values to keep the suite fast.
    """

    def __init__(self, time_cost: int | None = None, memory_cost: int | None = None, parallelism: int | None = None):
        params = {
            k: v
            for k, v in (("time_cost", time_cost), ("memory_cost", memory_cost), ("parallelism", parallelism))
            if v is not None
        }
        self._hasher = _Argon2Hasher(type=Type.ID, **params)
        # Timing equalization: login() verifies against this when the email is
        # unknown, so a miss costs the same as a wrong password.
        self.dummy_hash: str = self._hasher.hash("questrider_timing_dummy")

    def hash(self, plaintext: str) -> str:
        return self._hasher.hash(plaintext)

    def verify(self, hashed: str, plaintext: str) -> bool:
        """Return True only if plaintext matches hashed. Never raises."""
        try:
            return self._hasher.verify(hashed, plaintext)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError, TypeError, ValueError):
            logger.warning("Password verification against a malformed hash")
            return False
