"""Resilience utilities for external service calls.

- Retry backoff: fixed escalating schedule with jitter for transient errors
- Cancellation: cooperative cancel signal shared by fetches and model calls
"""

from invoice_pipeline.resilience.cancellation import CancelledByCaller, run_cancellable
from invoice_pipeline.resilience.retry import RetryConfig, sleep_or_cancel

__all__ = [
    "CancelledByCaller",
    "RetryConfig",
    "run_cancellable",
    "sleep_or_cancel",
]
