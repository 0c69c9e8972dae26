"""
Data models for Toxic Intelligence
Parsed, analyzed, persisted and summarized message records
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import List, Dict, Any, Optional


class SenderType(str, Enum):
    """Who produced a line: the analysis subject, a counterpart, or nobody."""

    SELF = "SELF"
    OTHER = "OTHER"
    SYSTEM = "SYSTEM"


SYSTEM_SENDER_NAME = "SYSTEM"


@dataclass
class ParsedMessage:
    """A single line of a chat export after parsing."""

    sender_name: str
    sender_type: SenderType
    text: str

    @classmethod
    def system(cls, text: str) -> "ParsedMessage":
        return cls(sender_name=SYSTEM_SENDER_NAME, sender_type=SenderType.SYSTEM, text=text)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender_name": self.sender_name,
            "sender_type": self.sender_type.value,
            "text": self.text,
        }


@dataclass
class AnalysisResult:
    """Scores for one message. toxicity in [0, 1], sentiment in [-1, 1]."""

    toxicity_score: float = 0.0
    sentiment_score: float = 0.0
    flags: List[str] = field(default_factory=list)

    @classmethod
    def neutral(cls) -> "AnalysisResult":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PersistedMessage:
    """A stored message: parsed fields, its scores, and storage metadata."""

    sender_name: str
    sender_type: SenderType
    text: str
    created_at: datetime
    toxicity_score: Optional[float] = None
    sentiment_score: Optional[float] = None
    flags: Optional[List[str]] = None
    timestamp: Optional[datetime] = None  # never reconstructed from the export
    id: Optional[int] = None
    conversation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_name": self.sender_name,
            "sender_type": self.sender_type.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "toxicity_score": self.toxicity_score,
            "sentiment_score": self.sentiment_score,
            "flags": self.flags,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ConversationSummary:
    """Conversation-level statistics, always recomputed from every message."""

    conversation_id: Optional[str] = None
    avg_toxicity_overall: float = 0.0
    avg_toxicity_self: float = 0.0
    avg_toxicity_other: float = 0.0
    sentiment_overall: float = 0.0
    conflict_days_count: int = 0
    breakup_risk_score: float = 0.0
    last_calculated_at: Optional[datetime] = None

    @classmethod
    def empty(cls, conversation_id: Optional[str] = None) -> "ConversationSummary":
        """All-zero summary reported for conversations never summarized."""
        return cls(conversation_id=conversation_id)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_calculated_at"] = (
            self.last_calculated_at.isoformat() if self.last_calculated_at else None
        )
        return data


@dataclass
class Conversation:
    """A named container that messages are imported into."""

    id: str
    title: str
    created_at: datetime
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }
