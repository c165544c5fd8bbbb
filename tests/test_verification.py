from dataclasses import dataclass

import pytest

from ckblight.constants import TAU, U64_MAX, U256_MAX
from ckblight.difficulty import EpochNumberWithFraction, difficulty_to_compact
from ckblight.errors import VerificationError
from ckblight.verification import (
    EpochCountGroupByTrend,
    EpochDifficultyTrend,
    EpochDifficultyTrendDetails,
    EstimatedLimit,
    Trend,
    check_continuous_headers,
    verify_tau,
    verify_total_difficulty,
)


def epoch(data):
    number, index, length = data
    return EpochNumberWithFraction(number=number, index=index, length=length)


@dataclass
class FakeHeader:
    number: int
    hash: bytes
    parent_hash: bytes


TAU_EXPONENT_CASES = [
    (0x100, 0x7F, 1),
    (0x100, 0x80, 0),
    (0x100, 0xFF, 0),
    (0x100, 0x100, 0),
    (0x100, 0x101, 0),
    (0x100, 0x200, 0),
    (0x100, 0x201, 1),
    (0xFF, 0x1000, 4),
    (0x100, 0xFFF, 3),
    (0x100, 0x1000, 3),
    (0x100, 0x1001, 4),
    (0x101, 0x1000, 3),
    (0x1000, 0xFF, 4),
    (0xFFF, 0x100, 3),
    (0x1000, 0x100, 3),
    (0x1001, 0x100, 3),
    (0x1000, 0x101, 3),
]


@pytest.mark.parametrize("diff_start, diff_end, k", TAU_EXPONENT_CASES)
def test_calculate_tau_exponent(diff_start, diff_end, k):
    tau = 2
    limit_min = 2
    trend = EpochDifficultyTrend.from_difficulties(diff_start, diff_end)
    for limit in range(limit_min, limit_min + k + 6):
        expected = k if k == 0 or limit > k else None
        assert trend.calculate_tau_exponent(tau, limit) == expected

    if trend.trend is Trend.UNCHANGED:
        assert diff_end == diff_start
    elif trend.trend is Trend.INCREASED:
        lower = diff_start * tau**k
        assert lower < diff_end <= lower * tau
    else:
        upper = diff_start
        for _ in range(k):
            upper //= tau
        assert upper > diff_end >= upper // tau


def test_trend_from_difficulties():
    assert EpochDifficultyTrend.from_difficulties(5, 5).trend is Trend.UNCHANGED
    assert EpochDifficultyTrend.from_difficulties(5, 6).trend is Trend.INCREASED
    assert EpochDifficultyTrend.from_difficulties(6, 5).trend is Trend.DECREASED


SPLIT_CASES = [(0x100, 0x100), (0x100, 0x1000), (0x1000, 0x100)]


@pytest.mark.parametrize("diff_start, diff_end", SPLIT_CASES)
def test_split_epochs(diff_start, diff_end):
    tau = 2
    trend = EpochDifficultyTrend.from_difficulties(diff_start, diff_end)
    k = trend.calculate_tau_exponent(tau, U64_MAX)
    assert k is not None
    n_min = 2 if k < 2 else k + 1
    for n in range(n_min, n_min + 11):
        for limit in (EstimatedLimit.MIN, EstimatedLimit.MAX):
            details = trend.split_epochs(limit, n, k)
            assert details.total_epochs_count() == n
            start_count = details.start.epochs_count()
            end_count = details.end.epochs_count()
            remainder = (n - k) % 2
            if trend.trend is Trend.UNCHANGED:
                assert start_count == end_count + remainder
            elif trend.trend is Trend.INCREASED:
                if limit is EstimatedLimit.MIN:
                    assert start_count + k == end_count + remainder
                else:
                    assert start_count == end_count + k + remainder
            else:
                if limit is EstimatedLimit.MIN:
                    assert start_count == end_count + k + remainder
                else:
                    assert start_count + k == end_count + remainder
            assert details.remove_last_epoch().total_epochs_count() == n - 1


def test_split_epochs_group_directions():
    trend = EpochDifficultyTrend.from_difficulties(0x100, 0x100)
    low = trend.split_epochs(EstimatedLimit.MIN, 4, 0)
    high = trend.split_epochs(EstimatedLimit.MAX, 4, 0)
    assert low.start.trend is Trend.DECREASED and low.end.trend is Trend.INCREASED
    assert high.start.trend is Trend.INCREASED and high.end.trend is Trend.DECREASED


@pytest.mark.parametrize(
    "diff_start, diff_end, n, limit, expected",
    [
        (0x100, 0x100, 2, EstimatedLimit.MIN, 0x80),
        (0x100, 0x100, 2, EstimatedLimit.MAX, 0x200),
        (0x100, 0x100, 3, EstimatedLimit.MIN, 0xC0),
        (0x100, 0x100, 3, EstimatedLimit.MAX, 0x600),
        (0x100, 0x100, 4, EstimatedLimit.MIN, 0x140),
        (0x100, 0x100, 4, EstimatedLimit.MAX, 0x800),
        (0x100, 0x1000, 4, EstimatedLimit.MIN, 0x380),
        (0x100, 0x1000, 4, EstimatedLimit.MAX, 0xE00),
        (0x1000, 0x100, 4, EstimatedLimit.MIN, 0xE00),
        (0x1000, 0x100, 4, EstimatedLimit.MAX, 0x3800),
    ],
)
def test_calculate_total_difficulty_limit(diff_start, diff_end, n, limit, expected):
    tau = 2
    trend = EpochDifficultyTrend.from_difficulties(diff_start, diff_end)
    k = trend.calculate_tau_exponent(tau, U64_MAX)
    details = trend.split_epochs(limit, n, k).remove_last_epoch()
    assert trend.calculate_total_difficulty_limit(diff_start, tau, details) == expected


@pytest.mark.parametrize("diff_start, diff_end", SPLIT_CASES)
def test_total_difficulty_min_not_above_max(diff_start, diff_end):
    tau = 2
    trend = EpochDifficultyTrend.from_difficulties(diff_start, diff_end)
    k = trend.calculate_tau_exponent(tau, U64_MAX)
    n_min = 2 if k < 2 else k + 1
    for n in range(n_min, n_min + 11):
        low = trend.calculate_total_difficulty_limit(
            diff_start, tau, trend.split_epochs(EstimatedLimit.MIN, n, k).remove_last_epoch()
        )
        high = trend.calculate_total_difficulty_limit(
            diff_start, tau, trend.split_epochs(EstimatedLimit.MAX, n, k).remove_last_epoch()
        )
        assert low <= high


def test_calculate_total_difficulty_limit_overflow():
    trend = EpochDifficultyTrend.from_difficulties(U256_MAX, U256_MAX)
    details = EpochDifficultyTrendDetails(
        EpochCountGroupByTrend.increased(2), EpochCountGroupByTrend.decreased(0)
    )
    with pytest.raises(OverflowError):
        trend.calculate_total_difficulty_limit(U256_MAX, 2, details)


def test_remove_last_epoch_takes_from_end_first():
    details = EpochDifficultyTrendDetails(
        EpochCountGroupByTrend.increased(3), EpochCountGroupByTrend.decreased(2)
    )
    removed = details.remove_last_epoch()
    assert removed.start.epochs_count() == 3
    assert removed.end.epochs_count() == 1
    emptied = EpochDifficultyTrendDetails(
        EpochCountGroupByTrend.increased(3), EpochCountGroupByTrend.decreased(0)
    ).remove_last_epoch()
    assert emptied.start.epochs_count() == 2
    assert emptied.end.epochs_count() == 0


def test_subtract1_below_zero_raises():
    with pytest.raises(ValueError):
        EpochCountGroupByTrend.decreased(0).subtract1()


VERIFY_TAU_CASES = [
    (((10, 0, 10), 0x3F), ((10, 9, 10), 0x40), None),
    (((10, 0, 10), 0x40), ((10, 9, 10), 0x40), False),
    (((10, 0, 10), 0x40), ((10, 9, 10), 0x41), None),
    (((10, 0, 10), 0x40), ((15, 0, 10), 0x1), False),
    (((10, 0, 10), 0x40), ((15, 0, 10), 0x2), True),
    (((10, 0, 10), 0x40), ((15, 0, 10), 0x3), True),
    (((10, 0, 10), 0x40), ((15, 0, 10), 0x7FF), True),
    (((10, 0, 10), 0x40), ((15, 0, 10), 0x800), True),
    (((10, 0, 10), 0x40), ((15, 0, 10), 0x801), False),
]


@pytest.mark.parametrize("start_data, end_data, expected", VERIFY_TAU_CASES)
def test_verify_tau(start_data, end_data, expected):
    (start_epoch_data, start_diff), (end_epoch_data, end_diff) = start_data, end_data
    args = (
        epoch(start_epoch_data),
        difficulty_to_compact(start_diff),
        epoch(end_epoch_data),
        difficulty_to_compact(end_diff),
        TAU,
    )
    if expected is None:
        with pytest.raises(VerificationError) as info:
            verify_tau(*args)
        assert info.value.code == "InvalidCompactTarget"
    else:
        assert verify_tau(*args) is expected


SAME_EPOCH_CASES = [
    (((10, 0, 10), 0x100), ((10, 0, 10), 0x100), True),
    (((10, 0, 10), 0x100), ((10, 1, 10), 0x100), False),
    (((10, 0, 10), 0x100), ((10, 1, 10), 0x103), False),
    (((10, 0, 10), 0x100), ((10, 1, 10), 0x104), True),
    (((10, 0, 10), 0x100), ((10, 1, 10), 0x105), False),
]


@pytest.mark.parametrize("start_data, end_data, expected", SAME_EPOCH_CASES)
def test_verify_total_difficulty_in_same_epoch(start_data, end_data, expected):
    compact = difficulty_to_compact(4)
    (start_epoch_data, start_total), (end_epoch_data, end_total) = start_data, end_data
    start_epoch, end_epoch = epoch(start_epoch_data), epoch(end_epoch_data)

    def run(end_value):
        return verify_total_difficulty(
            start_epoch, compact, start_total, end_epoch, compact, end_value, TAU
        )

    if expected:
        assert run(end_total) is None
        wrong = [end_total + delta for delta in (-3, -2, -1, 1, 2, 3)]
    else:
        wrong = [end_total]
    for value in wrong:
        with pytest.raises(VerificationError) as info:
            run(value)
        assert info.value.code == "InvalidTotalDifficulty"


TWO_EPOCHS_CASES = [
    (((10, 4, 10), 0x4, 0x100), ((11, 4, 10), 0x1, 0x119), False),
    (((10, 4, 10), 0x4, 0x100), ((11, 4, 10), 0x2, 0x11E), True),
    (((10, 4, 10), 0x4, 0x100), ((11, 4, 10), 0x3, 0x123), True),
    (((10, 4, 10), 0x4, 0x100), ((11, 4, 10), 0x4, 0x128), True),
    (((10, 4, 10), 0x4, 0x100), ((11, 4, 10), 0x5, 0x12D), True),
    (((10, 4, 10), 0x4, 0x100), ((11, 4, 10), 0x6, 0x132), True),
    (((10, 4, 10), 0x4, 0x100), ((11, 4, 10), 0x7, 0x137), True),
    (((10, 4, 10), 0x4, 0x100), ((11, 4, 10), 0x8, 0x13C), True),
    (((10, 4, 10), 0x4, 0x100), ((11, 4, 10), 0x9, 0x141), False),
]


def _run_between(start_data, end_data, end_total_override=None):
    start_epoch_data, start_diff, start_total = start_data
    end_epoch_data, end_diff, end_total = end_data
    if end_total_override is not None:
        end_total = end_total_override
    return verify_total_difficulty(
        epoch(start_epoch_data),
        difficulty_to_compact(start_diff),
        start_total,
        epoch(end_epoch_data),
        difficulty_to_compact(end_diff),
        end_total,
        TAU,
    )


@pytest.mark.parametrize("start_data, end_data, expected", TWO_EPOCHS_CASES)
def test_verify_total_difficulty_during_two_epochs(start_data, end_data, expected):
    end_total = end_data[2]
    if expected:
        assert _run_between(start_data, end_data) is None
        wrong = [end_total - 1, end_total + 1]
    else:
        wrong = [end_total]
    for value in wrong:
        with pytest.raises(VerificationError):
            _run_between(start_data, end_data, value)


MORE_EPOCHS_CASES = [
    (((11, 0, 10), 0x4, 0x100), ((15, 0, 10), 0x4, 0xFF), False),
    (((11, 0, 10), 0x4, 0x100), ((15, 0, 10), 0x4, 0x150), False),
    (((11, 0, 10), 0x4, 0x100), ((15, 0, 10), 0x4, 0x15A), True),
    (((11, 0, 10), 0x4, 0x100), ((15, 0, 10), 0x4, 0x1A0), True),
    (((11, 0, 10), 0x4, 0x100), ((15, 0, 10), 0x4, 0x268), True),
    (((11, 0, 10), 0x4, 0x100), ((15, 0, 10), 0x4, 0x269), False),
]


@pytest.mark.parametrize("start_data, end_data, expected", MORE_EPOCHS_CASES)
def test_verify_total_difficulty_during_more_than_two_epochs(start_data, end_data, expected):
    if expected:
        assert _run_between(start_data, end_data) is None
    else:
        with pytest.raises(VerificationError) as info:
            _run_between(start_data, end_data)
        assert "failed since" in str(info.value)


def test_verify_total_difficulty_changed_too_fast():
    with pytest.raises(VerificationError) as info:
        _run_between(((10, 0, 10), 0x4, 0x100), ((12, 0, 10), 0x400, 0x10000))
    assert "too fast" in str(info.value)


def test_check_continuous_headers_accepts_chain():
    headers = [
        FakeHeader(1, b"\x01", b"\x00"),
        FakeHeader(2, b"\x02", b"\x01"),
        FakeHeader(3, b"\x03", b"\x02"),
    ]
    assert check_continuous_headers(headers) is None
    assert check_continuous_headers([]) is None


def test_check_continuous_headers_rejects_gap():
    headers = [
        FakeHeader(1, b"\x01", b"\x00"),
        FakeHeader(2, b"\x02", b"\x09"),
    ]
    with pytest.raises(VerificationError) as info:
        check_continuous_headers(headers)
    assert info.value.code == "InvalidParentHash"
    assert "block#2" in str(info.value)