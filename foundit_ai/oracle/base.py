from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Protocol

from ..common.schemas import Report, VerificationPair

logger = logging.getLogger(__name__)

FALLBACK_PAIR = VerificationPair(question="What is the main color of the item?", answer="Detail")

_pool = ThreadPoolExecutor(max_workers=8, thread_name_prefix="oracle")


class SimilarityOracle(Protocol):
    """Black-box judgment service behind matching and verification."""

    def score(self, report_a: Report, report_b: Report) -> float: ...

    def generate_verification_question(self, found: Report) -> VerificationPair: ...

    def validate_answer(self, user_answer: str, expected_answer: str) -> bool: ...


def bounded_call(fn: Callable[..., Any], *args, timeout: float, default: Any, label: str) -> Any:
    """
    Run one oracle call with a deadline.

    A timeout or any exception yields `default`; the failure never spreads
    past the single request in flight.
    """
    future = _pool.submit(fn, *args)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        logger.warning(f"Oracle {label} timed out after {timeout}s")
        return default
    except Exception as e:
        logger.warning(f"Oracle {label} failed: {e}")
        return default
