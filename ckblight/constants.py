"""Protocol-wide constants."""

from datetime import timedelta

# How long a peer is banned after sending a malformed message.
BAD_MESSAGE_BAN_TIME = timedelta(minutes=5)

# A peer with more inflight GetBlockProof requests than this is dropped.
MAX_BLOCK_PROOF_REQUESTS = 64

# A GetBlockProof request older than this (milliseconds) gets the peer dropped.
GET_BLOCK_PROOF_TIMEOUT = 60 * 1000

# Number of most recent blocks always included in a proof.
LAST_N_BLOCKS = 100

REFRESH_PEERS_TOKEN = 0
REFRESH_PEERS_DURATION = timedelta(seconds=60)
CHECK_GET_BLOCK_PROOFS_TOKEN = 1
CHECK_GET_BLOCK_PROOFS_DURATION = timedelta(seconds=10)

# Upper bound of the factor by which the epoch difficulty may change per epoch.
TAU = 2

U256_MAX = (1 << 256) - 1
U64_MAX = (1 << 64) - 1