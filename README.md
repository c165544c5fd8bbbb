# ckblight

The chain-verification core of a blockchain light client. It is pure Python and
needs nothing outside the standard library.

Difficulties and total difficulties are plain Python integers treated as
unsigned 256-bit values.

## Modules

### `ckblight.sampling`: FlyClient block sampling

- `estimate_k(l, n, c)` estimates `k` so that the delta region `n * c**k` has
  length `l`.
- `estimate_samples_count(blocks_count, last_n_blocks, k, lambda_)` gives how
  many blocks to sample besides the last-N blocks. It returns 0 when the range
  is too short.
- `multiply(uint, ratio)` scales a 256-bit integer by a ratio below 1.0, using
  nine decimal digits of precision. It never returns zero.
- `FlyClientPDF(delta, start_difficulty, difficulty_range, difficulty_boundary)`
  draws difficulties with `sampling(samples_count)`, which returns the set of
  distinct samples. Every sample is below the boundary. An optional `rng`
  (a `random.Random`) can be passed for reproducible draws.
- `sample_blocks(start_number, start_difficulty, last_number, last_difficulty, last_n_blocks)`
  returns the difficulty boundary and the sorted sampled difficulties. The range
  includes the start block and excludes the last block.

### `ckblight.difficulty`: difficulty arithmetic

- `compact_to_difficulty(compact)` and `difficulty_to_compact(difficulty)`
  convert between compact targets and block difficulties.
  `difficulty_to_compact` raises `ValueError` for a difficulty that is not
  positive.
- `saturating_mul(a, b)` and `saturating_add(a, b)` clamp their results at
  2**256 - 1.
- `EpochNumberWithFraction(number, index, length)` is an epoch together with a
  block's position in it.
  - `full_value` packs it into a 64-bit integer, and `from_full_value` unpacks it.
  - It raises `ValueError` if a field does not fit its bit width.

### `ckblight.verification`: epoch and total difficulty checks

- `EpochDifficultyTrend.from_difficulties(start, end)` classifies a change as
  `Trend.UNCHANGED`, `Trend.INCREASED` or `Trend.DECREASED`. The trend provides:
  - `check_tau(tau, epochs_switch_count)`
  - `calculate_tau_exponent(tau, limit)`
  - `split_epochs(limit, n, k)`, which takes an `EstimatedLimit.MIN` or
    `EstimatedLimit.MAX` and returns `EpochDifficultyTrendDetails` made of two
    `EpochCountGroupByTrend` groups.
  - `calculate_total_difficulty_limit(start_epoch_difficulty, tau, details)`
- `verify_tau(start_epoch, start_compact_target, end_epoch, end_compact_target, tau)`
  returns whether the epoch difficulty stayed within the TAU limit. It returns
  `False` for two headers in the same epoch. It raises `VerificationError` if
  headers in the same epoch have different compact targets.
- `verify_total_difficulty(...)` raises `VerificationError` when the total
  difficulty claimed between two headers is not plausible.
- `check_continuous_headers(headers)` raises `VerificationError` when a header's
  `parent_hash` is not the previous header's `hash`. Headers are any objects
  with `number`, `hash` and `parent_hash` attributes.

### `ckblight.peers`: peer bookkeeping

The module defines `LastState`, `ProveRequest`, `ProveState` and `PeerState`.
`Peers` is a thread-safe registry of connected peers. For each peer it tracks:

- the last announced state,
- the pending prove request and the proved state,
- in-flight block-proof requests, keyed by any hashable value.

`Peers` has these uses:

- `check_block_proof_requests()` lists the peers with more than 64 in-flight
  requests, or with a request older than 60 seconds.
- `commit_prove_state()` refills the shared `last_headers` list.
- A `clock` callable that returns milliseconds can replace
  `unix_time_as_millis`.

### `ckblight.constants` and `ckblight.errors`

`constants` holds the protocol constants, such as `LAST_N_BLOCKS`, `TAU`,
`MAX_BLOCK_PROOF_REQUESTS` and `GET_BLOCK_PROOF_TIMEOUT`.

`errors` defines the exception hierarchy:

- `LightClientError` is the base class.
- `ConfigError`, `RuntimeFailure` and `VerificationError` derive from it.
- `VerificationError` has a `code` attribute that names the kind of failure,
  such as `"InvalidTotalDifficulty"`.
- `argument_should_exist(name)` builds the `ConfigError` for a missing argument.

## Example

```python
from ckblight.sampling import sample_blocks
from ckblight.difficulty import EpochNumberWithFraction, difficulty_to_compact
from ckblight.verification import verify_tau

boundary, difficulties = sample_blocks(1000, 0x10000, 5000, 0x50000, 100)
print(hex(boundary), len(difficulties))

start = EpochNumberWithFraction(10, 0, 10)
end = EpochNumberWithFraction(15, 0, 10)
print(verify_tau(start, difficulty_to_compact(0x40), end, difficulty_to_compact(0x800), 2))
```

## What it does not do

This package is a library only. It does not provide:

- a command-line program or configuration loading,
- networking, peer connections or protocol message handling,
- header, block or filter storage,
- proof-of-work or MMR proof verification.

Callers supply headers and requests as their own objects.

## Installation and tests

```
pip install .
pip install ".[test]"
pytest
```