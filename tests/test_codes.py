"""Unit tests for auth/codes.py -- one-time code generation.

Covers:
- fixed length, digits only, first digit never zero
- per-position digit distribution is roughly uniform
- invalid lengths are rejected
"""

from collections import Counter

import pytest

from auth.codes import generate_code


def test_default_code_is_six_digits() -> None:
    for _ in range(500):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()
        assert 100000 <= int(code) < 1000000


@pytest.mark.parametrize("length", [1, 4, 8, 10])
def test_code_length_is_respected(length: int) -> None:
    code = generate_code(length)
    assert len(code) == length
    assert code.isdigit()
    assert code[0] != "0"


def test_trailing_digits_are_uniform() -> None:
    """Positions 2-6 should each see every digit about 10% of the time.

    20k samples -> 100k digits per position group; expected 10k per digit.
    The +/-15% band is far outside normal sampling noise (sd ~ 95).
    """
    counts: Counter = Counter()
    for _ in range(20000):
        counts.update(generate_code(6)[1:])
    expected = 20000 * 5 / 10
    for digit in "0123456789":
        assert abs(counts[digit] - expected) < expected * 0.15, (digit, counts[digit])


def test_leading_digit_covers_one_to_nine() -> None:
    leading = Counter(generate_code(6)[0] for _ in range(9000))
    assert set(leading) == set("123456789")
    for digit in "123456789":
        assert abs(leading[digit] - 1000) < 250


@pytest.mark.parametrize("length", [0, -1])
def test_invalid_length_raises(length: int) -> None:
    with pytest.raises(ValueError):
        generate_code(length)
