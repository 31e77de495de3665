"""Resilient outbound HTTPS callouts.

This package provides a transport client, a retrying wrapper with
exponential backoff, an asynchronous batch dispatcher and a durable attempt
log.

Usage:
    python -m callouts send https://api.example.com/v1/health
    python -m callouts send callout:orders_api/v1/orders --config callouts.yaml
"""

from callouts.lib.dispatcher import AsyncDispatcher
from callouts.lib.models import CalloutOutcome, CalloutRequest, ErrorClass, WorkItem
from callouts.lib.resilience import ResilienceWrapper, RetryPolicy
from callouts.lib.transport import HttpTransport

__version__ = "1.0.0"

__all__ = [
    "AsyncDispatcher",
    "CalloutOutcome",
    "CalloutRequest",
    "ErrorClass",
    "HttpTransport",
    "ResilienceWrapper",
    "RetryPolicy",
    "WorkItem",
]
