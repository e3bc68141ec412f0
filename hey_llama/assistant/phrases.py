"""
Wake phrase, closing phrase and confirmation-reply matching on recognized text.
"""

import re
from enum import Enum
from typing import Iterable, Optional

DEFAULT_WAKE_PHRASE = "hey llama"

# Common transcriptions of the wake phrase. Order matters when two variants
# match at the same position: the first listed wins.
DEFAULT_WAKE_VARIANTS = (
    "hey llama",
    "hey lama",
    "hey, llama",
    "hey, lama",
    "hay llama",
    "llama",
    "lama",
)

DEFAULT_CLOSING_PHRASES = (
    "thanks",
    "thank you",
    "thanks llama",
    "thank you llama",
    "that's all",
    "that is all",
    "that's it",
    "that is it",
    "goodbye",
    "bye",
    "stop",
    "stop listening",
    "cancel",
)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lower-case, drop punctuation, collapse whitespace."""
    lowered = _NON_ALNUM.sub("", text.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


class PhraseMatcher:
    """Finds the wake phrase and closing phrases inside recognized text."""

    def __init__(
        self,
        wake_phrase: str = DEFAULT_WAKE_PHRASE,
        variants: Optional[Iterable[str]] = None,
        closing_phrases: Optional[Iterable[str]] = None,
    ):
        self.wake_phrase = wake_phrase.lower().strip()

        ordered = [self.wake_phrase]
        for variant in variants if variants is not None else DEFAULT_WAKE_VARIANTS:
            variant = variant.lower().strip()
            if variant and variant not in ordered:
                ordered.append(variant)
        self.variants = tuple(ordered)

        phrases = closing_phrases if closing_phrases is not None else DEFAULT_CLOSING_PHRASES
        self.closing_phrases = frozenset(p for p in (normalize_text(p) for p in phrases) if p)

    def _find_wake(self, text: str) -> Optional[tuple[int, int]]:
        """Earliest (start, end) of any variant in ``text``."""
        lowered = text.lower()
        best = None
        for variant in self.variants:
            index = lowered.find(variant)
            if index < 0:
                continue
            if best is None or index < best[0]:
                best = (index, index + len(variant))
        return best

    def contains_wake_word(self, text: str) -> bool:
        lowered = text.lower()
        return any(variant in lowered for variant in self.variants)

    def extract_command(self, text: str) -> Optional[str]:
        """
        Return the command following the wake phrase.

        The wake phrase may appear anywhere, since it is often preceded by
        filler speech. Returns None when there is no wake phrase or nothing
        after it.
        """
        match = self._find_wake(text)
        if match is None:
            return None

        command = text[match[1]:].strip()
        if command[:1] in (",", ":"):
            command = command[1:].strip()

        return command or None

    def is_closing_phrase(self, text: str) -> bool:
        """True for "thanks", "ok that's all", "cancel" and similar."""
        normalized = normalize_text(text)
        if not normalized:
            return False
        for phrase in self.closing_phrases:
            if normalized == phrase or normalized.endswith(" " + phrase):
                return True
        return False


class ConfirmationReply(Enum):
    CONFIRM = "confirm"
    DENY = "deny"
    CANCEL = "cancel"
    UNKNOWN = "unknown"


_IGNORED_TOKENS = frozenset({"please", "thanks", "thank", "you"})

_CANCEL_PHRASES = {("cancel",), ("never", "mind"), ("nevermind",)}
_YES_PHRASES = {
    ("yes",), ("yeah",), ("yep",), ("sure",), ("ok",), ("okay",),
    ("do",), ("do", "it"), ("go", "ahead"),
}
_NO_PHRASES = {("no",), ("nope",), ("nah",), ("dont",), ("do", "not")}


def classify_confirmation_reply(text: str) -> ConfirmationReply:
    """Classify a follow-up answer to a pending confirmation prompt."""
    tokens = tuple(t for t in normalize_text(text).split() if t not in _IGNORED_TOKENS)
    if not tokens:
        return ConfirmationReply.UNKNOWN
    if tokens in _CANCEL_PHRASES:
        return ConfirmationReply.CANCEL
    if tokens in _YES_PHRASES:
        return ConfirmationReply.CONFIRM
    if tokens in _NO_PHRASES:
        return ConfirmationReply.DENY
    return ConfirmationReply.UNKNOWN
