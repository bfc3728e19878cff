"""Storage layer - Redis persistence of aggregator state."""

from whale_copytrade.storage.redis_mirror import MirrorError, WhaleStateMirror

__all__ = [
    "MirrorError",
    "WhaleStateMirror",
]
