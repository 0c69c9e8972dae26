"""
Tests for SQLite message store and response cache
"""

import sqlite3
import pytest
from datetime import datetime, timedelta, timezone

from toxintel.cache import ResponseCache
from toxintel.models import AnalysisResult, ConversationSummary, ParsedMessage, SenderType
from toxintel.storage import ConversationNotFound, MessageStore


class StepClock:
    """Clock that returns queued times."""

    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        return self.times.pop(0)


@pytest.fixture
def store(tmp_path):
    return MessageStore(db_path=str(tmp_path / "test.db"))


def records(*texts):
    return [
        (ParsedMessage("me", SenderType.SELF, t), AnalysisResult(0.5, -0.1, ["insult"]))
        for t in texts
    ]


def test_create_and_list_conversations(store):
    """Test conversations come back newest first."""
    first = store.create_conversation("First")
    second = store.create_conversation("Second", "with description")

    listed = store.list_conversations()
    assert [c.id for c in listed] == [second.id, first.id]
    assert listed[0].description == "with description"
    assert store.get_conversation(first.id).title == "First"
    assert store.get_conversation("missing") is None


def test_insert_and_list_messages(store):
    """Test round trip of messages with scores and flags."""
    conv = store.create_conversation("Chat")
    count = store.insert_messages(conv.id, records("a", "b"))

    messages = store.list_messages(conv.id)
    assert count == 2
    assert [m.text for m in messages] == ["a", "b"]
    assert messages[0].sender_type == SenderType.SELF
    assert messages[0].toxicity_score == 0.5
    assert messages[0].sentiment_score == -0.1
    assert messages[0].flags == ["insult"]
    assert messages[0].timestamp is None
    assert messages[0].created_at.tzinfo is not None


def test_insert_without_results_stores_nulls(store):
    """Test None results become null scores."""
    conv = store.create_conversation("Chat")
    store.insert_messages(conv.id, [(ParsedMessage.system("note"), None)])

    msg = store.list_messages(conv.id)[0]
    assert msg.toxicity_score is None
    assert msg.sentiment_score is None
    assert msg.flags is None


def test_insert_unknown_conversation(store):
    """Test inserting into a missing conversation."""
    with pytest.raises(ConversationNotFound):
        store.insert_messages("nope", records("a"))


def test_list_messages_pagination(store):
    """Test limit and offset."""
    conv = store.create_conversation("Chat")
    store.insert_messages(conv.id, records(*[str(i) for i in range(10)]))

    page = store.list_messages(conv.id, limit=3, offset=4)
    assert [m.text for m in page] == ["4", "5", "6"]


def test_created_at_never_goes_backwards(tmp_path):
    """Test a clock going backwards does not reorder imports."""
    t0 = datetime(2024, 1, 2, tzinfo=timezone.utc)
    clock = StepClock(t0, t0 + timedelta(hours=1), t0 - timedelta(days=1))
    store = MessageStore(db_path=str(tmp_path / "test.db"), clock=clock)

    conv = store.create_conversation("Chat")
    store.insert_messages(conv.id, records("first"))
    store.insert_messages(conv.id, records("second"))

    messages = store.list_messages(conv.id)
    assert [m.text for m in messages] == ["first", "second"]
    assert messages[0].created_at == messages[1].created_at == t0 + timedelta(hours=1)


def test_summary_upsert_replaces(store):
    """Test one summary row per conversation, last write wins."""
    conv = store.create_conversation("Chat")
    assert store.get_summary(conv.id) is None

    stamp = datetime(2024, 5, 1, tzinfo=timezone.utc)
    store.upsert_summary(ConversationSummary(conv.id, 0.1, 0.1, 0.1, 0.0, 0, 0.06, stamp))
    store.upsert_summary(ConversationSummary(conv.id, 0.9, 1.0, 0.8, -0.5, 3, 0.69, stamp))

    summary = store.get_summary(conv.id)
    assert summary.avg_toxicity_overall == 0.9
    assert summary.conflict_days_count == 3
    assert summary.last_calculated_at == stamp


def test_ping(store):
    """Test health probe."""
    assert store.ping() is True


def test_response_cache(tmp_path):
    """Test cache set/get/stats."""
    cache = ResponseCache(cache_dir=tmp_path, ttl_days=1)
    payload = [{"text": "hi", "sender_type": "SELF"}]

    assert cache.get("model", payload) is None
    cache.set("model", payload, [{"toxicity_score": 0.2}])

    assert cache.get("model", payload) == [{"toxicity_score": 0.2}]
    assert cache.get("other-model", payload) is None
    assert cache.stats()["by_model"] == {"model": 1}
    assert cache.clear_all() == 1


def test_response_cache_expiry(tmp_path):
    """Test entries older than the TTL are ignored and cleared."""
    cache = ResponseCache(cache_dir=tmp_path, ttl_days=1)
    fresh = [{"text": "new", "sender_type": "SELF"}]
    stale = [{"text": "old", "sender_type": "OTHER"}]
    cache.set("model", fresh, [{"toxicity_score": 0.1}])
    cache.set("model", stale, [{"toxicity_score": 0.9}])

    backdated = (datetime.now() - timedelta(days=2)).isoformat()
    with sqlite3.connect(cache.db_path) as conn:
        conn.execute("UPDATE cache SET timestamp = ? WHERE key = ?",
                     (backdated, ResponseCache.make_key("model", stale)))
    conn.close()

    assert cache.stats()["expired"] == 1
    assert cache.clear_expired() == 1
    assert cache.get("model", stale) is None
    assert cache.get("model", fresh) == [{"toxicity_score": 0.1}]


def test_response_cache_get_drops_expired_entry(tmp_path):
    """Test get() treats an expired entry as a miss and removes it."""
    cache = ResponseCache(cache_dir=tmp_path, ttl_days=1)
    payload = [{"text": "old", "sender_type": "OTHER"}]
    cache.set("model", payload, [{"toxicity_score": 0.9}])

    backdated = (datetime.now() - timedelta(days=3)).isoformat()
    with sqlite3.connect(cache.db_path) as conn:
        conn.execute("UPDATE cache SET timestamp = ?", (backdated,))
    conn.close()

    assert cache.get("model", payload) is None
    assert cache.stats()["total_entries"] == 0


def test_response_cache_key_depends_on_sender_type():
    """Test the same text from different senders is cached separately."""
    a = ResponseCache.make_key("m", [{"text": "hi", "sender_type": "SELF"}])
    b = ResponseCache.make_key("m", [{"text": "hi", "sender_type": "OTHER"}])
    assert a != b


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
