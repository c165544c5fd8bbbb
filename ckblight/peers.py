"""Per-peer state kept by the light client while proving chains."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from ckblight.constants import GET_BLOCK_PROOF_TIMEOUT, MAX_BLOCK_PROOF_REQUESTS


def unix_time_as_millis() -> int:
    """Milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class LastState:
    """The tip a peer announced, with its total difficulty."""

    tip_header: Any
    total_difficulty: int


def _same_state(state: LastState, last_header: Any, total_difficulty: int) -> bool:
    return state.tip_header == last_header and state.total_difficulty == total_difficulty


@dataclass
class ProveRequest:
    """A request for block samples that proves a peer's last state."""

    last_state: LastState
    request: Any
    tau_check_skipped: bool = False

    @property
    def last_header(self) -> Any:
        return self.last_state.tip_header

    @property
    def total_difficulty(self) -> int:
        return self.last_state.total_difficulty

    def is_same_as(self, last_header: Any, total_difficulty: int) -> bool:
        """Whether this request proves the given tip and total difficulty."""
        return _same_state(self.last_state, last_header, total_difficulty)

    def skip_check_tau(self) -> None:
        """Mark the request so that the TAU check is skipped on its response."""
        self.tau_check_skipped = True


@dataclass(frozen=True)
class ProveState:
    """A peer's last state that has been proved, with its verified headers."""

    last_state: LastState
    reorg_last_headers: tuple = ()
    last_headers: tuple = ()

    @classmethod
    def new_from_request(
        cls,
        request: ProveRequest,
        reorg_last_headers: Sequence[Any],
        last_headers: Sequence[Any],
    ) -> ProveState:
        """Build the proved state from the request it answers."""
        return cls(request.last_state, tuple(reorg_last_headers), tuple(last_headers))

    @property
    def last_header(self) -> Any:
        return self.last_state.tip_header

    @property
    def total_difficulty(self) -> int:
        return self.last_state.total_difficulty

    def is_same_as(self, last_header: Any, total_difficulty: int) -> bool:
        """Whether this state is the given tip and total difficulty."""
        return _same_state(self.last_state, last_header, total_difficulty)


@dataclass
class PeerState:
    """What is known about one peer.

    ``block_proof_requests`` maps a serialized GetBlockProof request to the
    time it was sent (milliseconds) and whether the tip block should be
    fetched as well.
    """

    last_state: LastState | None = None
    prove_request: ProveRequest | None = None
    prove_state: ProveState | None = None
    block_proof_requests: dict[Hashable, tuple[int, bool]] = field(default_factory=dict)

    def contains_block_proof_request(self, request: Hashable) -> bool:
        return request in self.block_proof_requests

    def can_insert_block_proof_request(self) -> bool:
        return len(self.block_proof_requests) < MAX_BLOCK_PROOF_REQUESTS

    def _snapshot(self) -> PeerState:
        return replace(self, block_proof_requests=dict(self.block_proof_requests))

    def _commit_prove_state(self, state: ProveState) -> None:
        self.prove_state = state
        self.prove_request = None


@dataclass
class _Peer:
    update_timestamp: int
    state: PeerState = field(default_factory=PeerState)


class Peers:
    """Thread-safe registry of connected peers and their states.

    ``last_headers`` is a list shared with other components; it is refilled
    with the verified last-N headers whenever a prove state is committed.
    """

    def __init__(
        self,
        last_headers: list | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._inner: dict[Hashable, _Peer] = {}
        self._lock = threading.RLock()
        self.last_headers = last_headers if last_headers is not None else []
        self._clock = clock or unix_time_as_millis

    def add_peer(self, index: Hashable) -> None:
        with self._lock:
            self._inner[index] = _Peer(self._clock())

    def remove_peer(self, index: Hashable) -> None:
        with self._lock:
            self._inner.pop(index, None)

    def get_peers_index(self) -> list:
        with self._lock:
            return list(self._inner)

    def get_state(self, index: Hashable) -> PeerState | None:
        """A copy of the peer's state, or None for an unknown peer."""
        with self._lock:
            peer = self._inner.get(index)
            return peer.state._snapshot() if peer is not None else None

    def update_last_state(self, index: Hashable, last_state: LastState) -> None:
        with self._lock:
            peer = self._inner.get(index)
            if peer is not None:
                peer.state.last_state = last_state

    def update_timestamp(self, index: Hashable, timestamp: int) -> None:
        with self._lock:
            peer = self._inner.get(index)
            if peer is not None:
                peer.update_timestamp = timestamp

    def insert_block_proof_request(
        self, index: Hashable, request: Hashable, fetch_tip: bool
    ) -> None:
        with self._lock:
            peer = self._inner.get(index)
            if peer is not None:
                peer.state.block_proof_requests[request] = (self._clock(), fetch_tip)

    def remove_block_proof_request(
        self, index: Hashable, request: Hashable
    ) -> tuple[int, bool] | None:
        """Remove an inflight request, returning its (timestamp, fetch_tip)."""
        with self._lock:
            peer = self._inner.get(index)
            if peer is None:
                return None
            return peer.state.block_proof_requests.pop(request, None)

    def check_block_proof_requests(self) -> list:
        """Peers with too many inflight requests or a request that timed out."""
        now = self._clock()
        with self._lock:
            return [
                index
                for index, peer in self._inner.items()
                if len(peer.state.block_proof_requests) > MAX_BLOCK_PROOF_REQUESTS
                or any(
                    now - timestamp > GET_BLOCK_PROOF_TIMEOUT
                    for timestamp, _ in peer.state.block_proof_requests.values()
                )
            ]

    def submit_prove_request(self, index: Hashable, request: ProveRequest) -> None:
        now = self._clock()
        with self._lock:
            peer = self._inner.get(index)
            if peer is not None:
                peer.state.prove_request = request
                peer.update_timestamp = now

    def commit_prove_state(self, index: Hashable, state: ProveState) -> None:
        with self._lock:
            self.last_headers[:] = state.last_headers
            now = self._clock()
            peer = self._inner.get(index)
            if peer is not None:
                peer.state._commit_prove_state(state)
                peer.update_timestamp = now

    def get_peers_which_require_updating(self, before_timestamp: int) -> list:
        with self._lock:
            return [
                index
                for index, peer in self._inner.items()
                if peer.update_timestamp < before_timestamp
            ]

    def get_peers_which_are_proved(self) -> list[tuple[Hashable, ProveState]]:
        with self._lock:
            return [
                (index, peer.state.prove_state)
                for index, peer in self._inner.items()
                if peer.state.prove_state is not None
            ]