"""
Similarity oracle
-----------------
Public API:

    SimilarityOracle        (protocol: score / generate_verification_question / validate_answer)
    GeminiOracle(...)
    HeuristicOracle()
    build_oracle(settings)
    bounded_call(...)
"""

import logging

from ..common.config import Settings
from .base import FALLBACK_PAIR, SimilarityOracle, bounded_call
from .gemini import GeminiOracle
from .heuristic import HeuristicOracle

logger = logging.getLogger(__name__)


def build_oracle(settings: Settings) -> SimilarityOracle:
    if settings.google_api_key:
        logger.info(f"Using Gemini oracle ({settings.gemini_model})")
        return GeminiOracle(api_key=settings.google_api_key, model_name=settings.gemini_model,
                            timeout=settings.oracle_timeout, campus_name=settings.campus_name)
    logger.info("GOOGLE_API_KEY not set, using offline heuristic oracle")
    return HeuristicOracle()


__all__ = ["FALLBACK_PAIR", "GeminiOracle", "HeuristicOracle", "SimilarityOracle",
           "bounded_call", "build_oracle"]
