"""Checks on epoch difficulty changes and total difficulty between headers."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from ckblight.constants import U256_MAX
from ckblight.difficulty import (
    EpochNumberWithFraction,
    compact_to_difficulty,
    saturating_mul,
)
from ckblight.errors import VerificationError

log = logging.getLogger(__name__)


class Trend(enum.Enum):
    """Direction in which the epoch difficulty moved."""

    UNCHANGED = "unchanged"
    INCREASED = "increased"
    DECREASED = "decreased"


class EstimatedLimit(enum.Enum):
    """Which bound of the total difficulty is being estimated."""

    MIN = "min"
    MAX = "max"


@dataclass(frozen=True)
class EpochCountGroupByTrend:
    """A run of epochs whose difficulty moves in one direction."""

    trend: Trend
    count: int

    def __post_init__(self) -> None:
        if self.trend is Trend.UNCHANGED:
            raise ValueError("a group of epochs is either increased or decreased")
        if self.count < 0:
            raise ValueError(f"epochs count {self.count} is negative")

    @classmethod
    def increased(cls, count: int) -> EpochCountGroupByTrend:
        return cls(Trend.INCREASED, count)

    @classmethod
    def decreased(cls, count: int) -> EpochCountGroupByTrend:
        return cls(Trend.DECREASED, count)

    def subtract1(self) -> EpochCountGroupByTrend:
        """The same group with one epoch fewer."""
        return EpochCountGroupByTrend(self.trend, self.count - 1)

    def epochs_count(self) -> int:
        return self.count


@dataclass(frozen=True)
class EpochDifficultyTrendDetails:
    """Epochs split into a leading and a trailing group."""

    start: EpochCountGroupByTrend
    end: EpochCountGroupByTrend

    def remove_last_epoch(self) -> EpochDifficultyTrendDetails:
        """Drop the last epoch, taking it from the end group if it has any."""
        if self.end.epochs_count() == 0:
            return EpochDifficultyTrendDetails(self.start.subtract1(), self.end)
        return EpochDifficultyTrendDetails(self.start, self.end.subtract1())

    def total_epochs_count(self) -> int:
        return self.start.epochs_count() + self.end.epochs_count()


@dataclass(frozen=True)
class EpochDifficultyTrend:
    """How the epoch difficulty changed from a start epoch to an end epoch."""

    trend: Trend
    start: int
    end: int

    @classmethod
    def from_difficulties(
        cls, start_epoch_difficulty: int, end_epoch_difficulty: int
    ) -> EpochDifficultyTrend:
        if start_epoch_difficulty == end_epoch_difficulty:
            trend = Trend.UNCHANGED
        elif start_epoch_difficulty < end_epoch_difficulty:
            trend = Trend.INCREASED
        else:
            trend = Trend.DECREASED
        return cls(trend, start_epoch_difficulty, end_epoch_difficulty)

    def check_tau(self, tau: int, epochs_switch_count: int) -> bool:
        """Whether the change stays within ``tau`` per epoch switch."""
        if self.trend is Trend.UNCHANGED:
            log.debug("end epoch difficulty is same as the start epoch")
            return True
        if self.trend is Trend.INCREASED:
            end_max = self.start
            for _ in range(epochs_switch_count):
                following = saturating_mul(end_max, tau)
                if following == end_max:
                    break
                end_max = following
            log.debug(
                "end epoch difficulty is %s and upper limit is %s", self.end, end_max
            )
            return self.end <= end_max
        end_min = self.start
        for _ in range(epochs_switch_count):
            following = end_min // tau
            if following == end_min:
                break
            end_min = following
        log.debug("end epoch difficulty is %s and lower limit is %s", self.end, end_min)
        return self.end >= end_min

    def calculate_tau_exponent(self, tau: int, limit: int) -> int | None:
        """Find ``k`` in ``[0, limit)`` such that the end difficulty lies
        between ``start * tau**k`` (exclusive) and ``start * tau**(k+1)``
        (inclusive), or the mirrored range for a decrease.

        Returns ``None`` when no such ``k`` exists below ``limit``.
        """
        if self.trend is Trend.UNCHANGED:
            return 0
        tmp = self.start
        k = 0
        while k < limit:
            following = (
                saturating_mul(tmp, tau) if self.trend is Trend.INCREASED else tmp // tau
            )
            reached = following >= self.end if self.trend is Trend.INCREASED else following <= self.end
            if reached:
                return k
            if following == tmp:
                return None
            tmp = following
            k += 1
        return None

    def split_epochs(self, limit: EstimatedLimit, n: int, k: int) -> EpochDifficultyTrendDetails:
        """Split ``n`` epochs into a decreasing and an increasing part.

        For the minimum, difficulty decreases first and then increases; for the
        maximum, it increases first and then decreases.
        """
        if self.trend is Trend.UNCHANGED:
            if limit is EstimatedLimit.MIN:
                decreased = (n + 1) // 2
                increased = n - decreased
            else:
                increased = (n + 1) // 2
                decreased = n - increased
        elif self.trend is Trend.INCREASED:
            if limit is EstimatedLimit.MIN:
                decreased = (n - k + 1) // 2
                increased = n - decreased
            else:
                increased = (n - k + 1) // 2 + k
                decreased = n - increased
        else:
            if limit is EstimatedLimit.MIN:
                decreased = (n - k + 1) // 2 + k
                increased = n - decreased
            else:
                increased = (n - k + 1) // 2
                decreased = n - increased
        if limit is EstimatedLimit.MIN:
            return EpochDifficultyTrendDetails(
                EpochCountGroupByTrend.decreased(decreased),
                EpochCountGroupByTrend.increased(increased),
            )
        return EpochDifficultyTrendDetails(
            EpochCountGroupByTrend.increased(increased),
            EpochCountGroupByTrend.decreased(decreased),
        )

    def calculate_total_difficulty_limit(
        self, start_epoch_difficulty: int, tau: int, details: EpochDifficultyTrendDetails
    ) -> int:
        """Sum the epoch difficulties along the path described by ``details``.

        Raises OverflowError if the sum does not fit in 256 bits.
        """
        curr = start_epoch_difficulty
        total = 0
        for group in (details.start, details.end):
            for index in range(group.epochs_count()):
                if group.trend is Trend.DECREASED:
                    curr //= tau
                else:
                    curr = saturating_mul(curr, tau)
                total += curr
                if total > U256_MAX:
                    raise OverflowError(
                        "overflow when calculate the limit of total difficulty, "
                        f"current: {curr}, index: {index}/{group.epochs_count()}, tau: {tau}, "
                        f"state: {group.trend.value}, trend: {self}, details: {details}"
                    )
        return total


class Header(Protocol):
    """What check_continuous_headers needs from a header."""

    number: int
    hash: bytes
    parent_hash: bytes


def verify_tau(
    start_epoch: EpochNumberWithFraction,
    start_compact_target: int,
    end_epoch: EpochNumberWithFraction,
    end_compact_target: int,
    tau: int,
) -> bool:
    """Check the epoch difficulty change against ``tau``.

    Returns False when both headers share an epoch. Raises VerificationError
    if headers in the same epoch have different compact targets.
    """
    if start_epoch.number == end_epoch.number:
        log.debug("skip checking TAU since headers in the same epoch")
        if start_compact_target != end_compact_target:
            raise VerificationError(
                "different compact targets for a same epoch", code="InvalidCompactTarget"
            )
        return False
    start_epoch_difficulty = compact_to_difficulty(start_compact_target) * start_epoch.length
    end_epoch_difficulty = compact_to_difficulty(end_compact_target) * end_epoch.length
    epochs_switch_count = end_epoch.number - start_epoch.number
    trend = EpochDifficultyTrend.from_difficulties(start_epoch_difficulty, end_epoch_difficulty)
    return trend.check_tau(tau, epochs_switch_count)


def _fail_total_difficulty(message: str) -> VerificationError:
    return VerificationError(message, code="InvalidTotalDifficulty")


def verify_total_difficulty(
    start_epoch: EpochNumberWithFraction,
    start_compact_target: int,
    start_total_difficulty: int,
    end_epoch: EpochNumberWithFraction,
    end_compact_target: int,
    end_total_difficulty: int,
    tau: int,
) -> None:
    """Check that the total difficulty between two headers is plausible.

    Raises VerificationError when it is not.
    """
    epochs = f"during epochs ([{start_epoch},{end_epoch}])"
    if start_total_difficulty > end_total_difficulty:
        raise _fail_total_difficulty(
            f"failed since total difficulty is decreased from {start_total_difficulty:#x} "
            f"to {end_total_difficulty:#x} {epochs}"
        )

    total_difficulty = end_total_difficulty - start_total_difficulty
    start_block_difficulty = compact_to_difficulty(start_compact_target)

    if start_epoch.number == end_epoch.number:
        total_blocks_count = end_epoch.index - start_epoch.index
        calculated = start_block_difficulty * total_blocks_count
        if total_difficulty != calculated:
            raise _fail_total_difficulty(
                f"failed since total difficulty is {total_difficulty:#x} "
                f"but the calculated is {calculated:#x} "
                f"(= {start_block_difficulty:#x} * {total_blocks_count}) {epochs}"
            )
        return

    end_block_difficulty = compact_to_difficulty(end_compact_target)
    start_epoch_difficulty = start_block_difficulty * start_epoch.length
    end_epoch_difficulty = end_block_difficulty * end_epoch.length
    epochs_switch_count = end_epoch.number - start_epoch.number
    trend = EpochDifficultyTrend.from_difficulties(start_epoch_difficulty, end_epoch_difficulty)

    k = trend.calculate_tau_exponent(tau, epochs_switch_count)
    if k is None:
        raise _fail_total_difficulty(
            "failed since the epoch difficulty changed too fast "
            f"({start_epoch_difficulty:#x}->{end_epoch_difficulty:#x}) {epochs}"
        )

    start_epoch_blocks_count = start_epoch.length - start_epoch.index - 1
    end_epoch_blocks_count = end_epoch.index + 1
    unaligned = (
        start_block_difficulty * start_epoch_blocks_count
        + end_block_difficulty * end_epoch_blocks_count
    )
    if epochs_switch_count == 1:
        if total_difficulty != unaligned:
            raise _fail_total_difficulty(
                f"failed since total difficulty is {total_difficulty:#x} "
                f"but the calculated is {unaligned:#x} "
                f"(= {start_block_difficulty:#x} * {start_epoch_blocks_count} + "
                f"{end_block_difficulty:#x} * {end_epoch_blocks_count}) {epochs}"
            )
        return

    n = epochs_switch_count
    aligned_min = trend.calculate_total_difficulty_limit(
        start_epoch_difficulty,
        tau,
        trend.split_epochs(EstimatedLimit.MIN, n, k).remove_last_epoch(),
    )
    aligned_max = trend.calculate_total_difficulty_limit(
        start_epoch_difficulty,
        tau,
        trend.split_epochs(EstimatedLimit.MAX, n, k).remove_last_epoch(),
    )
    if not unaligned + aligned_min <= total_difficulty <= unaligned + aligned_max:
        raise _fail_total_difficulty(
            f"failed since total difficulty ({total_difficulty:#x}) isn't in the range "
            f"({unaligned:#x}+[{aligned_min:#x},{aligned_max:#x}]) {epochs}"
        )


def check_continuous_headers(headers: Iterable[Header]) -> None:
    """Check that each header's parent hash is the previous header's hash."""
    previous = None
    for header in headers:
        if previous is not None and previous.hash != header.parent_hash:
            raise VerificationError(
                f"failed to verify parent hash for block#{header.number}, "
                f"hash: 0x{bytes(header.hash).hex()} "
                f"expect 0x{bytes(header.parent_hash).hex()} "
                f"but got 0x{bytes(previous.hash).hex()}",
                code="InvalidParentHash",
            )
        previous = header