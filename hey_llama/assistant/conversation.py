"""
Conversation history with time-based windowing.

Holds the recent turns sent to the model as context, the short follow-up
window during which the wake phrase is not required, and at most one action
waiting for a yes/no confirmation.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


class ConversationRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    """One message in the conversation."""

    role: ConversationRole
    content: str
    timestamp: float = field(default_factory=time.time)

    def to_message(self) -> dict[str, str]:
        """OpenAI-style chat message."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class PendingConfirmation:
    """A skill call deferred until the user answers yes or no."""

    skill_id: str
    arguments: dict[str, Any]
    prompt: str
    expires_at: float
    created_at: float = field(default_factory=time.time)
    origin_user_request: Optional[str] = None

    @classmethod
    def from_skill_data(
        cls,
        data: dict[str, Any],
        expires_at: float,
        origin_user_request: Optional[str] = None,
    ) -> Optional["PendingConfirmation"]:
        """Build from a skill result's ``pendingAction`` block, if it has one."""
        pending = data.get("pendingAction")
        if not isinstance(pending, dict):
            return None

        skill_id = pending.get("skillId")
        arguments = pending.get("arguments")
        prompt = pending.get("prompt")
        if not isinstance(skill_id, str) or not isinstance(arguments, dict) or not isinstance(prompt, str):
            return None

        return cls(
            skill_id=skill_id,
            arguments=arguments,
            prompt=prompt,
            expires_at=expires_at,
            origin_user_request=origin_user_request,
        )


class ConversationWindow:
    """
    Bounded, time-pruned conversation state.

    Turns older than ``timeout_minutes`` are dropped and at most
    ``max_turns`` of the most recent are kept. Pruning happens lazily on
    every read and write, so no background timer is needed.
    """

    def __init__(
        self,
        timeout_minutes: float = 5,
        max_turns: int = 10,
        follow_up_window_seconds: float = 15,
        confirmation_timeout_seconds: float = 30,
        clock: Callable[[], float] = time.time,
    ):
        self.timeout_minutes = timeout_minutes
        self.max_turns = max_turns
        self.follow_up_window_seconds = follow_up_window_seconds
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self._clock = clock

        self._turns: list[ConversationTurn] = []
        self._last_follow_up: Optional[float] = None
        self._pending: Optional[PendingConfirmation] = None

    # ── History ──

    def add_turn(self, role: ConversationRole, content: str) -> None:
        self.add_turn_directly(ConversationTurn(role=ConversationRole(role), content=content, timestamp=self._clock()))

    def add_turn_directly(self, turn: ConversationTurn) -> None:
        """Append a pre-built turn (keeps its own timestamp)."""
        self._turns.append(turn)
        self._prune()

    def recent_history(self) -> list[ConversationTurn]:
        """Retained turns, oldest first."""
        self._prune()
        return list(self._turns)

    def has_recent_history(self) -> bool:
        self._prune()
        return bool(self._turns)

    def clear_history(self) -> None:
        self._turns.clear()

    def _prune(self) -> None:
        cutoff = self._clock() - self.timeout_minutes * 60
        self._turns = [t for t in self._turns if t.timestamp > cutoff]
        if len(self._turns) > self.max_turns:
            self._turns = self._turns[-self.max_turns:]

    # ── Follow-up window ──

    def start_follow_up(self) -> None:
        self._last_follow_up = self._clock()

    def extend_follow_up(self) -> None:
        self._last_follow_up = self._clock()

    def end_follow_up(self) -> None:
        self._last_follow_up = None

    def is_follow_up_active(self) -> bool:
        if self.follow_up_window_seconds <= 0 or self._last_follow_up is None:
            return False
        return self._clock() - self._last_follow_up <= self.follow_up_window_seconds

    # ── Pending confirmation ──

    def pending_confirmation_expiry(self) -> float:
        return self._clock() + self.confirmation_timeout_seconds

    def set_pending_confirmation(self, confirmation: PendingConfirmation) -> None:
        self._pending = confirmation
        self.start_follow_up()

    def get_pending_confirmation(self) -> Optional[PendingConfirmation]:
        """The pending confirmation, or None once it has expired."""
        if self._pending is None:
            return None
        if self._clock() >= self._pending.expires_at:
            self._pending = None
            return None
        return self._pending

    def clear_pending_confirmation(self) -> None:
        self._pending = None
