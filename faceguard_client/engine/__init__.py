"""Engine Layer - Resilient execution of remote operations

This module provides the core engine layer for the client, implementing:
- OperationOrchestrator: Cache-first entry point for every remote call
- RetryExecutor: Capped exponential backoff with idempotent writes
- ErrorClassifier: Maps failures to a closed set of outcome kinds
- OperationResult: Standardized result format
- CancelToken: Cooperative cancellation of attempts and backoff waits
"""

from .cancellation import CancelToken, run_cancellable
from .classifier import Classification, classify, extract_error_message, to_error_info
from .orchestrator import OperationOrchestrator
from .result import RETRYABLE_KINDS, ErrorInfo, OperationResult, OutcomeKind
from .retry import RetryExecutor, RetryPlan, Transport

__all__ = [
    "OperationOrchestrator",
    "RetryExecutor",
    "RetryPlan",
    "Transport",
    "OperationResult",
    "OutcomeKind",
    "ErrorInfo",
    "RETRYABLE_KINDS",
    "CancelToken",
    "run_cancellable",
    # Classification
    "Classification",
    "classify",
    "extract_error_message",
    "to_error_info",
]
