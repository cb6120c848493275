"""
Identifier codec.
Multiplexes a filler category into the low two decimal digits of the
64-bit identifier each entry carries inside the ANN index.
"""

from numbers import Integral
from typing import Tuple

from .errors import EncodingOverflowError, EncodingRangeError

# Modulus reserved for the filler category
FILLER_MODULUS = 100

# faiss labels entries with a signed 64-bit idx_t
MAX_COMPOUND_ID = 2 ** 63 - 1
MAX_SEQUENCE_POSITION = (MAX_COMPOUND_ID - (FILLER_MODULUS - 1)) // FILLER_MODULUS


def _require_int(name: str, value) -> int:
    # bool is an Integral but never a valid position or category
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    return int(value)


def validate_category(filler_category) -> int:
    """Check that a filler category fits in the reserved low-order digits."""
    filler_category = _require_int("filler_category", filler_category)
    if not 0 <= filler_category < FILLER_MODULUS:
        raise EncodingRangeError(
            f"Filler category {filler_category} outside [0, {FILLER_MODULUS})"
        )
    return filler_category


def encode(sequence_position, filler_category) -> int:
    """
    Build the compound ID for one corpus entry.

    Args:
        sequence_position: 0-based position of the entry in its ingestion run
        filler_category: Filler category, 0 <= category < FILLER_MODULUS

    Returns:
        sequence_position * FILLER_MODULUS + filler_category

    Raises:
        EncodingRangeError: category out of range or negative position
        EncodingOverflowError: position above MAX_SEQUENCE_POSITION
    """
    sequence_position = _require_int("sequence_position", sequence_position)
    filler_category = validate_category(filler_category)

    if sequence_position < 0:
        raise EncodingRangeError(f"Sequence position {sequence_position} is negative")
    if sequence_position > MAX_SEQUENCE_POSITION:
        raise EncodingOverflowError(
            f"Sequence position {sequence_position} exceeds maximum {MAX_SEQUENCE_POSITION}"
        )

    return sequence_position * FILLER_MODULUS + filler_category


def decode(compound_id) -> int:
    """Recover the filler category from a compound ID."""
    compound_id = _require_int("compound_id", compound_id)
    if compound_id < 0:
        raise EncodingRangeError(f"Compound ID {compound_id} is negative")
    return compound_id % FILLER_MODULUS


def split(compound_id) -> Tuple[int, int]:
    """Recover (sequence_position, filler_category) from a compound ID."""
    compound_id = _require_int("compound_id", compound_id)
    if compound_id < 0:
        raise EncodingRangeError(f"Compound ID {compound_id} is negative")
    return divmod(compound_id, FILLER_MODULUS)
