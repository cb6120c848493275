"""
Test cases for the identifier codec.
"""

import numpy as np
import pytest

from filler_index.core.codec import (
    FILLER_MODULUS,
    MAX_SEQUENCE_POSITION,
    decode,
    encode,
    split,
)
from filler_index.core.errors import EncodingOverflowError, EncodingRangeError


@pytest.mark.parametrize("position", [0, 1, 7, 99, 100, 12345, MAX_SEQUENCE_POSITION])
@pytest.mark.parametrize("category", [0, 1, 5, 42, 99])
def test_decode_recovers_category(position, category):
    """decode(encode(p, f)) == f for every valid position and category."""
    assert decode(encode(position, category)) == category


def test_encode_layout():
    """The category occupies the two low decimal digits."""
    assert encode(0, 5) == 5
    assert encode(3, 7) == 307
    assert split(307) == (3, 7)


def test_distinct_positions_never_collide():
    """Same category at different positions gives different IDs."""
    ids = {encode(p, 42) for p in range(1000)}
    assert len(ids) == 1000


def test_ids_increase_with_position():
    ids = [encode(p, f) for p, f in enumerate([3, 99, 0, 0, 57])]
    gaps = [b - a for a, b in zip(ids, ids[1:])]
    assert all(1 <= gap <= 199 for gap in gaps)
    assert ids == sorted(ids)


@pytest.mark.parametrize("category", [FILLER_MODULUS, 100, 150, -1, -100])
def test_encode_rejects_out_of_range_category(category):
    with pytest.raises(EncodingRangeError):
        encode(0, category)


def test_encode_range_error_is_value_error():
    """Callers catching ValueError still see range failures."""
    with pytest.raises(ValueError):
        encode(1, 100)


def test_encode_rejects_negative_position():
    with pytest.raises(EncodingRangeError):
        encode(-1, 3)


def test_encode_rejects_position_past_identifier_width():
    # Largest valid ID still fits a signed 64-bit label
    assert encode(MAX_SEQUENCE_POSITION, 99) <= 2 ** 63 - 1

    with pytest.raises(EncodingOverflowError):
        encode(MAX_SEQUENCE_POSITION + 1, 0)


@pytest.mark.parametrize("value", [1.0, "3", None, True])
def test_encode_rejects_non_integers(value):
    with pytest.raises(TypeError):
        encode(value, 1)
    with pytest.raises(TypeError):
        encode(1, value)


def test_numpy_integers_accepted():
    """faiss hands labels back as numpy int64."""
    compound_id = np.int64(encode(12, 34))
    assert decode(compound_id) == 34
    assert encode(np.int64(12), np.int32(34)) == 1234


def test_decode_rejects_negative_id():
    with pytest.raises(EncodingRangeError):
        decode(-1)
