"""Engine components orchestrating read → filter → dedup → export."""

from .aggregator import OutputAggregator
from .counters import CountersSnapshot, RunCounters
from .dedup import ShardedDedupIndex
from .filters import DustFilter, EncodingFilter, Filter, FilterChain, StatusFilter
from .record import DecodeFailure, FingerprintPolicy, Observation, Record, TxStatus, ValueFields, Verdict
from .scheduler import CancelToken, RunStatus, SchedulerOutcome, WorkScheduler
from .thread_pool import WorkerPool, resolve_worker_count

__all__ = [
    "CancelToken",
    "CountersSnapshot",
    "DecodeFailure",
    "DustFilter",
    "EncodingFilter",
    "Filter",
    "FilterChain",
    "FingerprintPolicy",
    "Observation",
    "OutputAggregator",
    "Record",
    "RunCounters",
    "RunStatus",
    "SchedulerOutcome",
    "ShardedDedupIndex",
    "StatusFilter",
    "TxStatus",
    "ValueFields",
    "Verdict",
    "WorkScheduler",
    "WorkerPool",
    "resolve_worker_count",
]
