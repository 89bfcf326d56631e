"""Tests for the rolling hash and base36 rendering."""

import pytest

from shelf_sync.core.hashing import rolling_hash, to_base36


class TestRollingHash:
    """Tests for rolling_hash."""

    def test_empty_string(self):
        assert rolling_hash("") == 0

    def test_small_values(self):
        assert rolling_hash("a") == 97
        assert rolling_hash("ab") == 97 * 31 + 98

    def test_matches_known_string_hashes(self):
        assert rolling_hash("hello") == 99162322
        assert rolling_hash("Hello") == 69609650

    def test_wraps_to_signed_32_bit(self):
        assert rolling_hash("polygenelubricants") == -(2**31)

    def test_counts_utf16_code_units(self):
        # U+1F600 is the surrogate pair D83D DE00
        assert rolling_hash("😀") == 0xD83D * 31 + 0xDE00

    def test_is_deterministic(self):
        assert rolling_hash("我与地坛-史铁生") == rolling_hash("我与地坛-史铁生")


class TestToBase36:
    """Tests for to_base36."""

    @pytest.mark.parametrize(
        "value,expected",
        [(0, "0"), (35, "z"), (36, "10"), (2**31, "zik0zk")],
    )
    def test_values(self, value, expected):
        assert to_base36(value) == expected

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            to_base36(-1)
