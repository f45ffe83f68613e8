"""Remote sinks for interaction records and their retry policy."""

from tracking_engine.sink.base import FailureKind, InteractionStore, RemoteSink, SinkResult
from tracking_engine.sink.retry import RetryConfig, RetryPolicy, compute_delay
from tracking_engine.sink.supabase import SupabaseSink

__all__ = [
    "FailureKind",
    "InteractionStore",
    "RemoteSink",
    "RetryConfig",
    "RetryPolicy",
    "SinkResult",
    "SupabaseSink",
    "compute_delay",
]
