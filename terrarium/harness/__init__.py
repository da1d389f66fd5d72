"""Runtime harness — the plumbing that keeps inference calls resilient."""
from terrarium.harness.retry import RetryConfig, compute_delay, is_retryable_error, with_retries

__all__ = ["RetryConfig", "compute_delay", "is_retryable_error", "with_retries"]
