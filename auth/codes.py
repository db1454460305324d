"""
auth/codes.py -- One-time numeric codes for email verification.

secrets.randbelow() draws from the OS CSPRNG. random.* must never be used
here: a predictable code lets an attacker activate an account for an email
they do not control.
"""

from __future__ import annotations

import secrets


def generate_code(length: int = 6) -> str:
    """Return a numeric code of exactly `length` digits.

    Uniform over [10^(length-1), 10^length), so the first digit is never 0
    and zfill never has to pad.
    """
    if length < 1:
        raise ValueError("length must be at least 1")
    low = 10 ** (length - 1)
    high = 10**length
    return str(low + secrets.randbelow(high - low)).zfill(length)
