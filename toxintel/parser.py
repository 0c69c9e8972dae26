"""
Chat line parser for Toxic Intelligence
Turns free-form "Name: message" exports into ordered, typed messages
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional

from . import config
from .models import ParsedMessage, SenderType

logger = logging.getLogger(__name__)

# Encodings tried in order when reading an export from disk
FILE_ENCODINGS = ["utf-8", "utf-8-sig", "cp1252", "latin1"]


class SenderClassifier:
    """Decide whether a sender name refers to the analysis subject."""

    def __init__(self, self_tokens: Optional[Iterable[str]] = None):
        """
        Args:
            self_tokens: Names meaning "me" (default from config.SELF_TOKENS).
                Matching is exact after trimming and case-folding.
        """
        tokens = config.SELF_TOKENS if self_tokens is None else self_tokens
        self.self_tokens = frozenset(t.strip().casefold() for t in tokens if t.strip())

    def is_self(self, name: str) -> bool:
        return name.strip().casefold() in self.self_tokens

    def classify(self, name: str) -> SenderType:
        return SenderType.SELF if self.is_self(name) else SenderType.OTHER


class ChatLineParser:
    """Parse raw chat text, one message per non-blank line."""

    def __init__(self, classifier: Optional[SenderClassifier] = None):
        self.classifier = classifier or SenderClassifier()

    def parse_file(self, file_path: str) -> List[ParsedMessage]:
        """Parse a chat export from disk."""
        last_err: Optional[Exception] = None

        for enc in FILE_ENCODINGS:
            try:
                with open(file_path, "r", encoding=enc) as f:
                    text = f.read()
                return self.parse(text)
            except UnicodeDecodeError as e:
                logger.debug(f"Could not decode {file_path} as {enc}: {e}")
                last_err = e
                continue

        raise ValueError(f"Failed to read/parse file {file_path}: {last_err}")

    def parse(self, raw: str) -> List[ParsedMessage]:
        """
        Parse raw multi-line chat text.

        Lines without a colon, starting with a colon, or with an empty name or
        body become SYSTEM messages carrying the whole trimmed line. Nothing
        raises; blank lines are dropped.

        Args:
            raw: Exported chat text

        Returns:
            Messages in document order
        """
        messages: List[ParsedMessage] = []

        for line in raw.split("\n"):
            message = self.parse_line(line)
            if message is not None:
                messages.append(message)

        logger.debug(f"Parsed {len(messages)} messages")
        return messages

    def parse_line(self, line: str) -> Optional[ParsedMessage]:
        """Parse a single line; None for blank lines."""
        trimmed = line.strip()
        if not trimmed:
            return None

        colon = trimmed.find(":")
        if colon <= 0:
            return ParsedMessage.system(trimmed)

        sender_name = trimmed[:colon].strip()
        text = trimmed[colon + 1:].strip()
        if not sender_name or not text:
            return ParsedMessage.system(trimmed)

        return ParsedMessage(
            sender_name=sender_name,
            sender_type=self.classifier.classify(sender_name),
            text=text,
        )


def parse_raw_chat(raw: str, self_tokens: Optional[Iterable[str]] = None) -> List[ParsedMessage]:
    """Parse raw chat text with a one-off parser."""
    return ChatLineParser(SenderClassifier(self_tokens)).parse(raw)


def count_by_sender_type(messages: List[ParsedMessage]) -> Dict[str, int]:
    """Count messages per sender type, always reporting all three types."""
    counts = Counter(m.sender_type for m in messages)
    return {t.value: counts.get(t, 0) for t in SenderType}


if __name__ == "__main__":
    # Test parser
    sample = "me: hello\nJohn: hi there\nrandom system note"
    for msg in parse_raw_chat(sample):
        print(msg.to_dict())
