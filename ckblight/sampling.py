"""FlyClient-style sampling of blocks by cumulative difficulty."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field

from ckblight.constants import U64_MAX, U256_MAX

log = logging.getLogger(__name__)

C_FRACTION = 0.5
LAMBDA = 50

# log10(2**32) is about 9.63, so nine decimal digits fit in 32 bits.
RATIO_SCALE_FACTOR = 1_000_000_000

_U32_MAX = (1 << 32) - 1


def _float_to_uint(value: float, upper: int) -> int:
    """Convert a float to an unsigned integer, saturating at both ends."""
    if math.isnan(value) or value <= 0:
        return 0
    if math.isinf(value) or value >= upper:
        return upper
    return int(value)


def _log(value: float, base: float) -> float:
    """Logarithm with IEEE semantics: zero gives -inf, negatives give NaN."""
    if math.isnan(value) or value < 0:
        return math.nan
    numerator = -math.inf if value == 0 else math.log(value)
    return numerator / math.log(base)


def multiply(uint: int, ratio: float) -> int:
    """Scale a 256-bit integer by a ratio below 1.0; never returns zero."""
    numerator = _float_to_uint(ratio * RATIO_SCALE_FACTOR, _U32_MAX)
    num = (uint * numerator) // RATIO_SCALE_FACTOR & U256_MAX
    return num or 1


@dataclass
class FlyClientPDF:
    """Sampler of difficulties distributed by the FlyClient PDF.

    Uses the inverse transform method: with CDF ``F(x) = ln(1-x)/ln(delta)``
    the inverse is ``h(x) = 1 - delta**x``.
    """

    delta: float
    start_difficulty: int
    difficulty_range: int
    difficulty_boundary: int
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    @property
    def x_max(self) -> float:
        return 1.0 - self.delta

    def _gen_x(self) -> float:
        x = self.rng.random() * self.x_max
        return 1.0 - self.delta**x

    def _random_sample(self) -> int:
        sample = self.start_difficulty + multiply(self.difficulty_range, self._gen_x())
        if sample >= self.difficulty_boundary:
            return self.difficulty_boundary - 1
        return sample

    def sampling(self, samples_count: int) -> set[int]:
        """Draw ``samples_count`` samples, returning the distinct ones."""
        return {self._random_sample() for _ in range(samples_count)}


def sample_blocks(
    start_number: int,
    start_difficulty: int,
    last_number: int,
    last_difficulty: int,
    last_n_blocks: int,
) -> tuple[int, list[int]]:
    """Sample difficulties in the range that includes the start block and
    excludes the last block.

    Returns the difficulty boundary and the sorted sampled difficulties.
    """
    blocks_count = last_number - start_number
    k = estimate_k(last_n_blocks, blocks_count, C_FRACTION)
    samples_count = estimate_samples_count(blocks_count, last_n_blocks, k, LAMBDA)

    delta = C_FRACTION**k
    difficulty_range = last_difficulty - start_difficulty
    difficulty_boundary = start_difficulty + multiply(difficulty_range, 1.0 - delta)

    log.debug(
        "sampling: samples=%s, n=%s, delta=%s, k=%s in [%s,%s), [%s, %s, %s)",
        samples_count,
        last_n_blocks,
        delta,
        k,
        start_number,
        last_number,
        start_difficulty,
        difficulty_boundary,
        last_difficulty,
    )

    pdf = FlyClientPDF(delta, start_difficulty, difficulty_range, difficulty_boundary)
    return difficulty_boundary, sorted(pdf.sampling(samples_count))


def estimate_k(l: int, n: int, c: float) -> float:
    """Estimate ``k`` so that the delta region ``n * c**k`` has length ``l``."""
    return _log(l / n, c)


def estimate_samples_count(blocks_count: int, last_n_blocks: int, k: float, lambda_: int) -> int:
    """Estimate how many blocks must be sampled for a failure probability
    of at most ``2**-lambda_``, excluding the last-N blocks."""
    if blocks_count <= last_n_blocks:
        log.debug(
            "sampling: no sampled blocks since the blocks count (%s<=%s) is too small",
            blocks_count,
            last_n_blocks,
        )
        return 0
    with_inf = float(lambda_) / _log(1.0 - 1.0 / k, 0.5)
    m = _float_to_uint(math.ceil(with_inf) if math.isfinite(with_inf) else with_inf, U64_MAX)
    if m <= last_n_blocks:
        log.debug(
            "sampling: the estimated samples count (%s<=%s) is too small", m, last_n_blocks
        )
        return 0
    if m > blocks_count:
        log.warning(
            "sampling: the estimated samples count (%s>%s) is too bigger", m, blocks_count
        )
        return blocks_count - last_n_blocks
    return m - last_n_blocks