"""
Normalizer for analysis output
The analysis model is best effort: it may return too few or too many items,
wrong types, or out-of-range scores. Everything it returns goes through here.
"""

import math
import logging
from typing import Any, List

from .models import AnalysisResult

logger = logging.getLogger(__name__)


class MalformedAnalysisOutput(Exception):
    """Analysis output could not be interpreted as a list of results."""
    pass


def _clamp(value: float, min_val: float, max_val: float) -> float:
    return max(min_val, min(max_val, value))


def _coerce_score(value: Any) -> float:
    """Coerce a raw score to float; 0.0 when it is not a usable number."""
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return number


def _coerce_flags(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [flag for flag in value if isinstance(flag, str)]


def normalize_result(raw: Any) -> AnalysisResult:
    """Normalize one raw result record; non-mappings become neutral."""
    if isinstance(raw, AnalysisResult):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        return AnalysisResult.neutral()

    return AnalysisResult(
        toxicity_score=_clamp(_coerce_score(raw.get("toxicity_score")), 0.0, 1.0),
        sentiment_score=_clamp(_coerce_score(raw.get("sentiment_score")), -1.0, 1.0),
        flags=_coerce_flags(raw.get("flags")),
    )


def normalize_results(raw_results: Any, expected_count: int) -> List[AnalysisResult]:
    """
    Align raw analysis output with the messages that were sent.

    Args:
        raw_results: Whatever the analysis capability returned
        expected_count: Number of messages analyzed

    Returns:
        Exactly expected_count results, padded with neutral results or truncated

    Raises:
        MalformedAnalysisOutput: raw_results is not a list
    """
    if not isinstance(raw_results, (list, tuple)):
        raise MalformedAnalysisOutput(
            f"Expected a list of analysis results, got {type(raw_results).__name__}"
        )

    expected_count = max(0, expected_count)
    if len(raw_results) != expected_count:
        logger.warning(
            f"Analysis count mismatch: got {len(raw_results)}, expected {expected_count}"
        )

    results = [normalize_result(r) for r in raw_results[:expected_count]]
    results.extend(neutral_results(expected_count - len(results)))
    return results


def neutral_results(count: int) -> List[AnalysisResult]:
    """Neutral fallback used when analysis is unavailable."""
    return [AnalysisResult.neutral() for _ in range(max(0, count))]
