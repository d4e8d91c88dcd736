"""
Custody Swap Runner

Builds DEX swap transactions, has them co-signed by a custody vault, and
optionally forwards them to a low-latency relay, in timed sequential batches.
"""

__version__ = "1.0.0"

from .models import BroadcastMode, SwapRequest, SwapOutcome, SubmissionResult
from .pipeline import SwapPipeline
from .orchestrator import BatchOrchestrator, RunState
from .stats import LatencyTracker, calculate_percentiles

__all__ = [
    "BroadcastMode",
    "SwapRequest",
    "SwapOutcome",
    "SubmissionResult",
    "SwapPipeline",
    "BatchOrchestrator",
    "RunState",
    "LatencyTracker",
    "calculate_percentiles",
]
