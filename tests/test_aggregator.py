"""
Tests for summary aggregator
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from toxintel.aggregator import SummaryAggregator
from toxintel.models import PersistedMessage, SenderType

D1 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
D2 = datetime(2024, 3, 2, 21, 30, tzinfo=timezone.utc)


def make_message(sender_type, toxicity, created_at, sentiment=0.0, text="x"):
    return PersistedMessage(
        sender_name="me" if sender_type == SenderType.SELF else "Other",
        sender_type=sender_type,
        text=text,
        created_at=created_at,
        toxicity_score=toxicity,
        sentiment_score=sentiment,
        flags=[],
    )


@pytest.fixture
def scenario():
    """Three messages over two days, both days in conflict."""
    return [
        make_message(SenderType.SELF, 0.8, D1, text="a"),
        make_message(SenderType.OTHER, 0.2, D1 + timedelta(hours=1), text="b"),
        make_message(SenderType.SELF, 0.9, D2, text="c"),
    ]


def test_empty_messages():
    """Test summarize([]) is all zeros."""
    summary = SummaryAggregator().summarize([])

    assert summary.avg_toxicity_overall == 0.0
    assert summary.avg_toxicity_self == 0.0
    assert summary.avg_toxicity_other == 0.0
    assert summary.sentiment_overall == 0.0
    assert summary.conflict_days_count == 0
    assert summary.breakup_risk_score == 0.0


def test_two_day_scenario(scenario):
    """Test averages, conflict days and risk on the reference scenario."""
    summary = SummaryAggregator().summarize(scenario)

    assert summary.avg_toxicity_overall == pytest.approx((0.8 + 0.2 + 0.9) / 3)
    assert summary.avg_toxicity_self == pytest.approx(0.85)
    assert summary.avg_toxicity_other == pytest.approx(0.2)
    # D1 mean is exactly 0.5 (inclusive threshold), D2 is 0.9
    assert summary.conflict_days_count == 2
    assert summary.breakup_risk_score == pytest.approx(0.6333333 * 0.6 + 0.1, abs=1e-6)
    assert summary.breakup_risk_score == pytest.approx(0.48, abs=0.001)


def test_day_below_threshold_not_counted():
    """Test a day averaging just under 0.5 is not a conflict day."""
    messages = [
        make_message(SenderType.SELF, 0.49, D1),
        make_message(SenderType.OTHER, 0.49, D1),
    ]
    summary = SummaryAggregator().summarize(messages)

    assert summary.conflict_days_count == 0
    assert summary.breakup_risk_score == pytest.approx(0.49 * 0.6)


def test_days_bucketed_by_utc_date():
    """Test messages are grouped on the UTC calendar day."""
    tz_plus7 = timezone(timedelta(hours=7))
    messages = [
        # 2024-03-02 05:00 local is still 2024-03-01 in UTC
        make_message(SenderType.SELF, 1.0, datetime(2024, 3, 2, 5, 0, tzinfo=tz_plus7)),
        make_message(SenderType.OTHER, 0.0, datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)),
    ]
    daily = SummaryAggregator().daily_toxicity(messages)

    assert daily == {date(2024, 3, 1): pytest.approx(0.5)}


def test_naive_timestamps_treated_as_utc():
    """Test naive created_at values are accepted."""
    messages = [
        make_message(SenderType.SELF, 0.6, datetime(2024, 3, 1, 10)),
        make_message(SenderType.SELF, 0.6, datetime(2024, 3, 2, 10)),
    ]
    summary = SummaryAggregator().summarize(messages)
    assert summary.conflict_days_count == 2


def test_null_scores_are_excluded():
    """Test unscored messages are left out of each average independently."""
    messages = [
        make_message(SenderType.SELF, 0.4, D1, sentiment=None),
        make_message(SenderType.OTHER, None, D1, sentiment=-0.6),
        make_message(SenderType.SYSTEM, None, D1, sentiment=None),
    ]
    summary = SummaryAggregator().summarize(messages)

    assert summary.avg_toxicity_overall == pytest.approx(0.4)
    assert summary.avg_toxicity_self == pytest.approx(0.4)
    assert summary.avg_toxicity_other == 0.0
    assert summary.sentiment_overall == pytest.approx(-0.6)
    assert summary.conflict_days_count == 0


def test_all_scores_null():
    """Test a conversation with no scores at all."""
    messages = [make_message(SenderType.SELF, None, D1, sentiment=None)]
    summary = SummaryAggregator().summarize(messages)

    assert summary.avg_toxicity_overall == 0.0
    assert summary.sentiment_overall == 0.0
    assert summary.breakup_risk_score == 0.0


def test_system_messages_count_overall_only():
    """Test SYSTEM messages are in the overall mean but not SELF/OTHER."""
    messages = [
        make_message(SenderType.SYSTEM, 1.0, D1),
        make_message(SenderType.SELF, 0.0, D1),
    ]
    summary = SummaryAggregator().summarize(messages)

    assert summary.avg_toxicity_overall == pytest.approx(0.5)
    assert summary.avg_toxicity_self == 0.0
    assert summary.avg_toxicity_other == 0.0


def test_risk_score_saturates():
    """Test risk is clipped at 1.0 with many conflict days."""
    messages = [
        make_message(SenderType.OTHER, 1.0, D1 + timedelta(days=i))
        for i in range(30)
    ]
    summary = SummaryAggregator().summarize(messages)

    assert summary.conflict_days_count == 30
    assert summary.breakup_risk_score == 1.0


def test_risk_score_formula():
    """Test the linear risk model constants."""
    assert SummaryAggregator.risk_score(0.0, 0) == 0.0
    assert SummaryAggregator.risk_score(0.5, 2) == pytest.approx(0.4)
    assert SummaryAggregator.risk_score(1.0, 8) == 1.0


def test_summarize_is_deterministic(scenario):
    """Test recomputation on identical input gives identical output."""
    agg = SummaryAggregator()
    stamp = datetime(2024, 4, 1, tzinfo=timezone.utc)

    first = agg.summarize(scenario, conversation_id="c1", calculated_at=stamp)
    second = agg.summarize(list(scenario), conversation_id="c1", calculated_at=stamp)

    assert first == second
    assert first.conversation_id == "c1"
    assert first.last_calculated_at == stamp


def test_sentiment_overall(scenario):
    """Test sentiment mean."""
    scenario[0].sentiment_score = 0.5
    scenario[1].sentiment_score = -1.0
    scenario[2].sentiment_score = 0.2
    summary = SummaryAggregator().summarize(scenario)

    assert summary.sentiment_overall == pytest.approx(-0.1)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
