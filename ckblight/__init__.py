"""FlyClient sampling, difficulty verification and peer bookkeeping for a light client."""

__version__ = "0.1.0"
__all__ = ["constants", "difficulty", "errors", "peers", "sampling", "verification"]