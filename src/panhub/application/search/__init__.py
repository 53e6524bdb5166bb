from .executor import InFlightCall, RequestExecutor
from .generation import GenerationCounter
from .merger import count_total, merge_by_type
from .orchestrator import SearchOrchestrator
from .scheduler import Batch, BatchPlan, clamp_concurrency, plan_batches
from .sessions import SearchSession, SearchSessionRegistry

__all__ = [
    "Batch",
    "BatchPlan",
    "GenerationCounter",
    "InFlightCall",
    "RequestExecutor",
    "SearchOrchestrator",
    "SearchSession",
    "SearchSessionRegistry",
    "clamp_concurrency",
    "count_total",
    "merge_by_type",
    "plan_batches",
]
