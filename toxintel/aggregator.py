"""
Summary aggregator for Toxic Intelligence
Folds per-message scores into conversation-level statistics
"""

import logging
from datetime import date, datetime
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from .models import ConversationSummary, PersistedMessage, SenderType

logger = logging.getLogger(__name__)

# A day is a conflict day when its mean toxicity reaches this value
CONFLICT_DAY_THRESHOLD = 0.5

# breakup_risk = clip(avg_toxicity * 0.6 + conflict_days * 0.05, 0, 1)
RISK_TOXICITY_WEIGHT = 0.6
RISK_CONFLICT_DAY_PENALTY = 0.05


class SummaryAggregator:
    """Pure reducer from a conversation's messages to its summary."""

    def summarize(
        self,
        messages: Sequence[PersistedMessage],
        conversation_id: Optional[str] = None,
        calculated_at: Optional[datetime] = None,
    ) -> ConversationSummary:
        """
        Compute the summary for one conversation from all of its messages.

        Args:
            messages: Every stored message of the conversation
            conversation_id: Copied into the result
            calculated_at: Copied into the result as last_calculated_at

        Returns:
            ConversationSummary; all zeros when there is nothing scored
        """
        if not messages:
            return ConversationSummary(
                conversation_id=conversation_id,
                last_calculated_at=calculated_at,
            )

        df = self._to_frame(messages)
        toxic = df[df["toxicity_score"].notna()]
        sentiment = df[df["sentiment_score"].notna()]

        avg_overall = self._mean(toxic["toxicity_score"])
        avg_self = self._mean(toxic.loc[toxic["sender_type"] == SenderType.SELF.value, "toxicity_score"])
        avg_other = self._mean(toxic.loc[toxic["sender_type"] == SenderType.OTHER.value, "toxicity_score"])
        sentiment_overall = self._mean(sentiment["sentiment_score"])

        daily = self._daily_means(toxic)
        conflict_days = int((daily >= CONFLICT_DAY_THRESHOLD).sum())

        summary = ConversationSummary(
            conversation_id=conversation_id,
            avg_toxicity_overall=avg_overall,
            avg_toxicity_self=avg_self,
            avg_toxicity_other=avg_other,
            sentiment_overall=sentiment_overall,
            conflict_days_count=conflict_days,
            breakup_risk_score=self.risk_score(avg_overall, conflict_days),
            last_calculated_at=calculated_at,
        )
        logger.debug(
            f"Summarized {len(df)} messages: toxicity={avg_overall:.3f}, "
            f"conflict_days={conflict_days}, risk={summary.breakup_risk_score:.3f}"
        )
        return summary

    def daily_toxicity(self, messages: Sequence[PersistedMessage]) -> Dict[date, float]:
        """Mean toxicity per UTC calendar day, for toxicity-scored messages."""
        if not messages:
            return {}
        df = self._to_frame(messages)
        daily = self._daily_means(df[df["toxicity_score"].notna()])
        return {day: float(mean) for day, mean in daily.items()}

    @staticmethod
    def risk_score(avg_toxicity: float, conflict_days: int) -> float:
        raw = avg_toxicity * RISK_TOXICITY_WEIGHT + conflict_days * RISK_CONFLICT_DAY_PENALTY
        return float(np.clip(raw, 0.0, 1.0))

    def _to_frame(self, messages: Sequence[PersistedMessage]) -> pd.DataFrame:
        df = pd.DataFrame({
            "sender_type": [SenderType(m.sender_type).value for m in messages],
            "toxicity_score": [m.toxicity_score for m in messages],
            "sentiment_score": [m.sentiment_score for m in messages],
            "created_at": [m.created_at for m in messages],
        })
        return df.astype({"toxicity_score": "float64", "sentiment_score": "float64"})

    def _daily_means(self, toxic: pd.DataFrame) -> pd.Series:
        if len(toxic) == 0:
            return pd.Series(dtype="float64")
        # Naive timestamps are taken to be UTC already
        days = pd.to_datetime(toxic["created_at"], utc=True).dt.date
        return toxic["toxicity_score"].groupby(days).mean()

    @staticmethod
    def _mean(values: pd.Series) -> float:
        if len(values) == 0:
            return 0.0
        return float(values.mean())
