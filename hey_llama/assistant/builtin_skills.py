"""
Builtin skills for the voice assistant.

Registered through ``register_builtin_skills(registry, context)``, the same
entry point external skill packs use.

Context dict keys consumed by builtin skills:

    memory_path     Path                    JSON file for remembered notes
    now             callable() -> datetime  Clock (defaults to datetime.now)
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated

from hey_llama.assistant.skills import SkillExecutionFailed, SkillRegistry, SkillResult

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_PATH = Path.home() / ".hey_llama_memory.json"

BUILTIN_SKILL_IDS = ("clock.time", "notes.remember", "notes.recall", "notes.clear")


def register_builtin_skills(registry: SkillRegistry, context: dict | None = None) -> None:
    """Register all builtin skills with the given registry.

    Args:
        registry: SkillRegistry instance to register skills on.
        context: Dict of helpers the skills need (see module docstring).
    """
    context = context or {}
    _register_clock_skills(registry, context)
    _register_note_skills(registry, context)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

def _register_clock_skills(registry: SkillRegistry, context: dict) -> None:
    now = context.get("now", datetime.now)

    @registry.skill(
        "clock.time",
        "Get the current date and time. Use when the user asks what time it is, "
        "what today's date is, or anything about the current time.",
        name="Clock",
    )
    def get_time() -> str:
        return now().strftime("It's %I:%M %p on %A, %B %d, %Y.").replace(" 0", " ")


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------

def _load_notes(path: Path) -> list[str]:
    if not path.exists():
        return []
    try:
        notes = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        logger.warning("Could not read notes from %s", path)
        return []
    return [str(n) for n in notes] if isinstance(notes, list) else []


def _save_notes(path: Path, notes: list[str]) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(notes, indent=2))
    except OSError as e:
        raise SkillExecutionFailed(f"could not save notes ({e})") from e


def _register_note_skills(registry: SkillRegistry, context: dict) -> None:
    mem_path = Path(context.get("memory_path", DEFAULT_MEMORY_PATH))

    @registry.skill(
        "notes.remember",
        "Remember a piece of information for the user. Use when the user asks "
        "you to remember, save, or note something.",
        name="Notes",
    )
    def remember(
        info: Annotated[str, "The information to remember"],
    ) -> str:
        info = info.strip()
        if not info:
            return "I didn't catch what to remember."
        notes = _load_notes(mem_path)
        notes.append(info)
        _save_notes(mem_path, notes)
        return "I'll remember that."

    @registry.skill(
        "notes.recall",
        "Recall previously remembered information. Use when the user asks what "
        "you remember, or asks about something they previously told you to remember.",
        name="Notes",
    )
    def recall(
        query: Annotated[str, (
            "What to search for. Use 'all' to get everything, "
            "or a keyword to search notes."
        )] = "all",
    ) -> str:
        notes = _load_notes(mem_path)
        if not notes:
            return "I don't have anything saved yet."

        if query.lower() in ("all", "everything", ""):
            numbered = [f"{i+1}. {n}" for i, n in enumerate(notes)]
            return "Here's what I remember: " + " ".join(numbered)

        matches = [n for n in notes if query.lower() in n.lower()]
        if not matches:
            return f"I don't remember anything about '{query}'."
        numbered = [f"{i+1}. {n}" for i, n in enumerate(matches)]
        return "Here's what I found: " + " ".join(numbered)

    @registry.skill(
        "notes.clear",
        "Forget everything the user asked you to remember. Use when the user "
        "asks you to clear, delete, or forget their notes.",
        name="Notes",
    )
    def clear_notes(
        confirmed: Annotated[bool, "Set only after the user has confirmed"] = False,
    ) -> SkillResult:
        notes = _load_notes(mem_path)
        if not notes:
            return SkillResult(text="There's nothing to forget.")

        if not confirmed:
            prompt = f"Do you want me to forget all {len(notes)} saved notes?"
            return SkillResult(
                text=prompt,
                data={
                    "pendingAction": {
                        "skillId": "notes.clear",
                        "arguments": {"confirmed": True},
                        "prompt": prompt,
                    }
                },
            )

        _save_notes(mem_path, [])
        return SkillResult(text="Okay, I've forgotten everything.")
