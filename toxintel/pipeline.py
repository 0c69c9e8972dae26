"""
Import pipeline for Toxic Intelligence
Parse -> analyze -> normalize -> store -> recompute summary.
Used by both the CLI and the Flask API so imports behave the same everywhere.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from .aggregator import SummaryAggregator
from .analysis_client import AnalysisCapabilityUnavailable
from .models import AnalysisResult, ConversationSummary, ParsedMessage, PersistedMessage
from .normalizer import MalformedAnalysisOutput, neutral_results, normalize_results
from .parser import ChatLineParser, count_by_sender_type
from .storage import ConversationNotFound, MessageStore, utc_now

logger = logging.getLogger(__name__)


class EmptyImportError(ValueError):
    """Raw chat text produced no messages."""
    pass


def analyze_with_fallback(analyzer: Any, messages: Sequence[ParsedMessage]) -> List[AnalysisResult]:
    """
    Run the analysis capability and align its output with the messages.

    Any failure of the capability degrades to neutral results; analysis
    problems never stop messages from being imported.

    Args:
        analyzer: Object with analyze(messages) -> list, or None to skip analysis
        messages: Parsed messages

    Returns:
        Exactly len(messages) results
    """
    if analyzer is None:
        logger.info("Analysis disabled, using neutral results")
        return neutral_results(len(messages))

    try:
        raw = analyzer.analyze(messages)
        return normalize_results(raw, len(messages))
    except AnalysisCapabilityUnavailable as e:
        logger.warning(f"Analysis capability unavailable, using neutral results: {e}")
    except MalformedAnalysisOutput as e:
        logger.warning(f"Malformed analysis output, using neutral results: {e}")
    except Exception as e:
        logger.error(f"Analysis failed, using neutral results: {e}", exc_info=True)
    return neutral_results(len(messages))


class ImportPipeline:
    """Orchestrates imports and summary recomputation for stored conversations."""

    def __init__(
        self,
        store: MessageStore,
        analyzer: Any = None,
        parser: Optional[ChatLineParser] = None,
        aggregator: Optional[SummaryAggregator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            store: Storage collaborator
            analyzer: Analysis capability (e.g. AnalysisClient); None stores neutral scores
            parser: Chat parser (default ChatLineParser with configured self tokens)
            aggregator: Summary reducer
            clock: Source of last_calculated_at (default UTC now)
        """
        self.store = store
        self.analyzer = analyzer
        self.parser = parser or ChatLineParser()
        self.aggregator = aggregator or SummaryAggregator()
        self.clock = clock or utc_now

    def import_raw(self, conversation_id: str, raw: str) -> int:
        """
        Import raw chat text into a conversation.

        Args:
            conversation_id: Existing conversation
            raw: Exported chat text

        Returns:
            Number of messages imported

        Raises:
            EmptyImportError: Nothing could be parsed (nothing is written)
            ConversationNotFound: Unknown conversation (nothing is written)
        """
        # Step 1: Parse
        messages = self.parser.parse(raw)
        if not messages:
            raise EmptyImportError("No messages found in raw chat")
        logger.info(f"Parsed {len(messages)} messages for conversation {conversation_id}")

        if self.store.get_conversation(conversation_id) is None:
            raise ConversationNotFound(f"Conversation not found: {conversation_id}")

        # Step 2: Analyze
        results = analyze_with_fallback(self.analyzer, messages)

        # Step 3: Store
        imported = self.store.insert_messages(conversation_id, list(zip(messages, results)))

        # Step 4: Summary (best effort; the insert stands either way)
        try:
            self.recompute_summary(conversation_id)
        except Exception as e:
            logger.error(
                f"Summary recompute failed for conversation {conversation_id}: {e}",
                exc_info=True,
            )

        return imported

    def recompute_summary(self, conversation_id: str) -> ConversationSummary:
        """Rebuild the summary from every stored message and upsert it."""
        messages = self.store.list_messages(conversation_id)
        summary = self.aggregator.summarize(
            messages,
            conversation_id=conversation_id,
            calculated_at=self.clock(),
        )
        self.store.upsert_summary(summary)
        logger.info(
            f"Summary for {conversation_id}: toxicity={summary.avg_toxicity_overall:.3f}, "
            f"conflict_days={summary.conflict_days_count}, risk={summary.breakup_risk_score:.3f}"
        )
        return summary

    def get_summary(self, conversation_id: str) -> ConversationSummary:
        """Stored summary, or the all-zero summary if none was computed yet."""
        summary = self.store.get_summary(conversation_id)
        if summary is None:
            return ConversationSummary.empty(conversation_id)
        return summary


def analyze_text(
    raw: str,
    analyzer: Any = None,
    parser: Optional[ChatLineParser] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Analyze a chat export in memory, without storage.

    All messages are stamped with the same time, so the whole export counts as
    a single day for conflict-day detection.

    Returns:
        Dictionary containing:
        - messages: per-message dicts with scores and flags
        - summary: conversation summary dict
        - metadata: counts per sender type and the analysis mode
    """
    parser = parser or ChatLineParser()
    messages = parser.parse(raw)
    if not messages:
        raise EmptyImportError("No messages found in raw chat")

    results = analyze_with_fallback(analyzer, messages)
    stamp = now or utc_now()

    persisted = [
        PersistedMessage(
            sender_name=m.sender_name,
            sender_type=m.sender_type,
            text=m.text,
            created_at=stamp,
            toxicity_score=r.toxicity_score,
            sentiment_score=r.sentiment_score,
            flags=r.flags,
            id=i,
        )
        for i, (m, r) in enumerate(zip(messages, results))
    ]
    summary = SummaryAggregator().summarize(persisted, calculated_at=stamp)

    return {
        "messages": [p.to_dict() for p in persisted],
        "summary": summary.to_dict(),
        "metadata": {
            "total_messages": len(messages),
            "by_sender_type": count_by_sender_type(messages),
            "analysis_enabled": analyzer is not None,
        },
    }
