"""Difficulty arithmetic: compact targets, 256-bit saturation and epochs."""

from __future__ import annotations

from dataclasses import dataclass

from ckblight.constants import U256_MAX

# The size of the hash space; difficulty is HSPACE / target.
_HSPACE = 1 << 256

_EPOCH_NUMBER_BITS = 24
_EPOCH_INDEX_BITS = 16
_EPOCH_LENGTH_BITS = 16
_EPOCH_INDEX_OFFSET = _EPOCH_NUMBER_BITS
_EPOCH_LENGTH_OFFSET = _EPOCH_NUMBER_BITS + _EPOCH_INDEX_BITS


def saturating_mul(a: int, b: int) -> int:
    """Multiply two unsigned 256-bit integers, clamping at the maximum."""
    return min(a * b, U256_MAX)


def saturating_add(a: int, b: int) -> int:
    """Add two unsigned 256-bit integers, clamping at the maximum."""
    return min(a + b, U256_MAX)


def _compact_to_target(compact: int) -> tuple[int, bool]:
    exponent = compact >> 24
    mantissa = compact & 0x00FF_FFFF
    if exponent <= 3:
        target = mantissa >> (8 * (3 - exponent))
    else:
        target = (mantissa << (8 * (exponent - 3))) & U256_MAX
    overflow = mantissa != 0 and exponent > 32
    return target, overflow


def _target_to_difficulty(target: int) -> int:
    if target == 1:
        return U256_MAX
    return (_HSPACE // target) & U256_MAX


def _target_to_compact(target: int) -> int:
    exponent = (target.bit_length() + 7) // 8
    if exponent <= 3:
        mantissa = (target << (8 * (3 - exponent))) & 0xFFFF_FFFF
    else:
        mantissa = (target >> (8 * (exponent - 3))) & 0xFFFF_FFFF
    return (mantissa | (exponent << 24)) & 0xFFFF_FFFF


def compact_to_difficulty(compact: int) -> int:
    """Convert a compact target to a block difficulty.

    A zero or overflowing target gives a difficulty of zero.
    """
    target, overflow = _compact_to_target(compact)
    if target == 0 or overflow:
        return 0
    return _target_to_difficulty(target)


def difficulty_to_compact(difficulty: int) -> int:
    """Convert a block difficulty to its compact target."""
    if difficulty <= 0:
        raise ValueError("difficulty must be positive")
    if difficulty == 1:
        target = U256_MAX
    else:
        target = _target_to_difficulty(difficulty)
    return _target_to_compact(target)


@dataclass(frozen=True)
class EpochNumberWithFraction:
    """An epoch number together with a block's position inside the epoch."""

    number: int
    index: int
    length: int

    def __post_init__(self) -> None:
        for name, value, bits in (
            ("number", self.number, _EPOCH_NUMBER_BITS),
            ("index", self.index, _EPOCH_INDEX_BITS),
            ("length", self.length, _EPOCH_LENGTH_BITS),
        ):
            if not 0 <= value < (1 << bits):
                raise ValueError(f"epoch {name} {value} does not fit in {bits} bits")

    @property
    def full_value(self) -> int:
        """The packed 64-bit representation."""
        return (
            self.number
            | (self.index << _EPOCH_INDEX_OFFSET)
            | (self.length << _EPOCH_LENGTH_OFFSET)
        )

    @classmethod
    def from_full_value(cls, value: int) -> EpochNumberWithFraction:
        """Unpack an epoch from its 64-bit representation."""
        return cls(
            number=value & ((1 << _EPOCH_NUMBER_BITS) - 1),
            index=(value >> _EPOCH_INDEX_OFFSET) & ((1 << _EPOCH_INDEX_BITS) - 1),
            length=(value >> _EPOCH_LENGTH_OFFSET) & ((1 << _EPOCH_LENGTH_BITS) - 1),
        )

    def __str__(self) -> str:
        return f"{self.number}({self.index}/{self.length})"