"""
Skills: named actions the model can ask the assistant to run.

A skill receives its arguments as a JSON string and returns a
``SkillResult``. Skills live in a ``SkillRegistry``, an ordered mapping
keyed by skill id with an explicit set of enabled ids. Plain functions can be
registered with the ``skill`` decorator, which builds the JSON Schema for the
manifest from the function's type hints.
"""

import inspect
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Callable, Iterable, Optional, get_args, get_origin

from hey_llama.core.audio import LOCAL_MIC, AudioSource

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class SkillError(Exception):
    """Base class for skill lookup and execution failures."""


class SkillNotFound(SkillError):
    def __init__(self, skill_id: str):
        super().__init__(f"Skill not found: {skill_id}")
        self.skill_id = skill_id


class SkillDisabled(SkillError):
    def __init__(self, skill_id: str):
        super().__init__(f"Skill is disabled: {skill_id}")
        self.skill_id = skill_id


class PermissionMissing(SkillError):
    def __init__(self, permission: str):
        super().__init__(f"{permission} permission was denied")
        self.permission = permission


class InvalidArguments(SkillError):
    def __init__(self, message: str):
        super().__init__(f"Invalid arguments: {message}")


class SkillExecutionFailed(SkillError):
    def __init__(self, message: str):
        super().__init__(f"Skill execution failed: {message}")


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SkillContext:
    """Passed to skills when they run."""

    speaker: Optional[Any] = None
    source: AudioSource = LOCAL_MIC
    timestamp: float = field(default_factory=time.time)


@dataclass
class SkillResult:
    """Text for the user plus optional structured data.

    ``data`` may carry a ``pendingAction`` block asking the assistant to
    confirm with the user before running a follow-up call.
    """

    text: str
    data: Optional[dict[str, Any]] = None


class Skill(ABC):
    """A named action with a single ``run`` contract."""

    id: str = ""
    name: str = ""
    description: str = ""
    required_permissions: tuple[str, ...] = ()
    arguments_schema: dict[str, Any] = {"type": "object", "properties": {}}

    @abstractmethod
    def run(self, arguments_json: str, context: SkillContext) -> SkillResult:
        pass

    @staticmethod
    def decode_arguments(arguments_json: str) -> dict[str, Any]:
        try:
            arguments = json.loads(arguments_json) if arguments_json else {}
        except json.JSONDecodeError as e:
            raise InvalidArguments(str(e)) from e
        if not isinstance(arguments, dict):
            raise InvalidArguments("expected a JSON object")
        return arguments


# ---------------------------------------------------------------------------
# Function skills
# ---------------------------------------------------------------------------

# Python type → JSON Schema type
_TYPE_MAP: dict[type, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def _parse_google_docstring_args(fn: Callable) -> dict[str, str]:
    """Extract parameter descriptions from a Google-style ``Args:`` section."""
    doc = inspect.getdoc(fn)
    if not doc:
        return {}

    descriptions: dict[str, str] = {}
    in_args = False
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped.lower().startswith("args:"):
            in_args = True
            continue
        if in_args:
            if not stripped:
                break
            m = re.match(r"(\w+)(?:\s*\([^)]*\))?\s*:\s*(.+)", stripped)
            if m:
                descriptions[m.group(1)] = m.group(2).strip()
    return descriptions


def build_arguments_schema(fn: Callable) -> dict[str, Any]:
    """JSON Schema for ``fn``'s parameters.

    Descriptions come from ``Annotated[type, "desc"]`` first, then the
    docstring. Parameters without defaults are required. A parameter named
    ``context`` receives the ``SkillContext`` and is left out of the schema.
    """
    sig = inspect.signature(fn)
    hints = getattr(fn, "__annotations__", {})
    docstring_args = _parse_google_docstring_args(fn)

    properties: dict[str, Any] = {}
    required: list[str] = []

    for name, param in sig.parameters.items():
        if name == "context":
            continue
        hint = hints.get(name)
        if hint is None:
            continue

        param_desc: Optional[str] = None
        actual_type = hint
        if get_origin(hint) is Annotated:
            args = get_args(hint)
            actual_type = args[0]
            for a in args[1:]:
                if isinstance(a, str):
                    param_desc = a
                    break

        if param_desc is None:
            param_desc = docstring_args.get(name)

        origin = get_origin(actual_type) or actual_type
        prop: dict[str, Any] = {"type": _TYPE_MAP.get(origin, "string")}
        if param_desc:
            prop["description"] = param_desc
        properties[name] = prop

        if param.default is inspect.Parameter.empty:
            required.append(name)

    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


class FunctionSkill(Skill):
    """Adapts a plain function to the ``Skill`` contract."""

    def __init__(
        self,
        fn: Callable[..., Any],
        skill_id: str,
        name: str,
        description: str,
        required_permissions: Iterable[str] = (),
    ):
        self.fn = fn
        self.id = skill_id
        self.name = name
        self.description = description
        self.required_permissions = tuple(required_permissions)
        self.arguments_schema = build_arguments_schema(fn)
        self._wants_context = "context" in inspect.signature(fn).parameters

    def run(self, arguments_json: str, context: SkillContext) -> SkillResult:
        arguments = self.decode_arguments(arguments_json)

        known = self.arguments_schema["properties"]
        missing = [p for p in self.arguments_schema.get("required", []) if p not in arguments]
        if missing:
            raise InvalidArguments(f"missing {', '.join(missing)}")
        unknown = [k for k in arguments if k not in known]
        if unknown:
            logger.debug("Skill %s: ignoring unknown arguments %s", self.id, unknown)
        kwargs = {k: v for k, v in arguments.items() if k in known}
        if self._wants_context:
            kwargs["context"] = context

        result = self.fn(**kwargs)
        if isinstance(result, SkillResult):
            return result
        return SkillResult(text=str(result) if result is not None else "Done.")


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------

class PermissionStatus(Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNDETERMINED = "undetermined"


class PermissionManager(ABC):
    """Checks and requests named permissions (``"microphone"``, ``"location"``...)."""

    @abstractmethod
    def status(self, permission: str) -> PermissionStatus:
        pass

    @abstractmethod
    def request(self, permission: str) -> bool:
        pass

    def missing_for(self, skill: Skill) -> list[str]:
        """Required permissions of ``skill`` that are not granted."""
        return [p for p in skill.required_permissions if self.status(p) != PermissionStatus.GRANTED]


class StaticPermissionManager(PermissionManager):
    """
    In-memory permission table.

    Unlisted permissions start undetermined and are granted on request
    unless ``grant_on_request`` is False or they were explicitly denied.
    """

    def __init__(
        self,
        granted: Iterable[str] = (),
        denied: Iterable[str] = (),
        grant_on_request: bool = True,
    ):
        self._status: dict[str, PermissionStatus] = {}
        for p in granted:
            self._status[p] = PermissionStatus.GRANTED
        for p in denied:
            self._status[p] = PermissionStatus.DENIED
        self.grant_on_request = grant_on_request

    def status(self, permission: str) -> PermissionStatus:
        return self._status.get(permission, PermissionStatus.UNDETERMINED)

    def request(self, permission: str) -> bool:
        current = self.status(permission)
        if current == PermissionStatus.UNDETERMINED:
            current = PermissionStatus.GRANTED if self.grant_on_request else PermissionStatus.DENIED
            self._status[permission] = current
        logger.info("Permission %s request result: %s", permission, current.value)
        return current == PermissionStatus.GRANTED


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_MANIFEST_HEADER = (
    "You have access to the following skills (tools). "
    "You must respond with a single JSON object only. Do not wrap in code fences. "
    "Do not add extra text before or after the JSON. "
    "To use a skill, respond with JSON in the format: "
    '{"type":"call_skills","calls":[{"skillId":"<id>","arguments":{...}}]}\n'
    'If a user asks to perform multiple actions, include multiple calls in the "calls" array.\n'
    'To respond with text only, use: {"type":"respond","text":"<your response>"}\n'
    'Never put tool call JSON inside the "text" field.\n\n'
    "Available skills:\n\n"
)

_MANIFEST_FOOTER = (
    "---\n"
    "IMPORTANT: Always respond with valid JSON. Choose 'respond' for conversational "
    "replies or 'call_skills' when the user's request matches an available skill.\n"
)


class SkillRegistry:
    """Ordered skills keyed by id, with explicit enable/disable control."""

    def __init__(self, enabled_skill_ids: Optional[Iterable[str]] = None):
        self._skills: dict[str, Skill] = {}
        self._enabled: set[str] = set(enabled_skill_ids or ())

    def register(self, skill: Skill, enabled: Optional[bool] = None) -> Skill:
        """Add ``skill``. ``enabled=None`` leaves the enabled set untouched."""
        if not skill.id:
            raise ValueError("Skill id must not be empty")
        if skill.id in self._skills:
            raise ValueError(f"Skill '{skill.id}' is already registered")
        self._skills[skill.id] = skill
        if enabled is True:
            self._enabled.add(skill.id)
        elif enabled is False:
            self._enabled.discard(skill.id)
        logger.debug("Registered skill %s", skill.id)
        return skill

    def skill(
        self,
        skill_id: str,
        description: str,
        name: Optional[str] = None,
        permissions: Iterable[str] = (),
        enabled: Optional[bool] = None,
    ) -> Callable:
        """Decorator that registers a function as a skill."""

        def decorator(fn: Callable) -> Callable:
            self.register(
                FunctionSkill(
                    fn,
                    skill_id=skill_id,
                    name=name or fn.__name__.replace("_", " ").title(),
                    description=description,
                    required_permissions=permissions,
                ),
                enabled=enabled,
            )
            return fn

        return decorator

    def get(self, skill_id: str) -> Optional[Skill]:
        return self._skills.get(skill_id)

    @property
    def all_skills(self) -> list[Skill]:
        return list(self._skills.values())

    @property
    def enabled_skills(self) -> list[Skill]:
        return [s for s in self._skills.values() if s.id in self._enabled]

    def is_enabled(self, skill_id: str) -> bool:
        return skill_id in self._enabled and skill_id in self._skills

    def enable(self, skill_id: str) -> None:
        self._enabled.add(skill_id)

    def disable(self, skill_id: str) -> None:
        self._enabled.discard(skill_id)

    def update_enabled(self, enabled_skill_ids: Iterable[str]) -> None:
        self._enabled = set(enabled_skill_ids)

    def generate_manifest(self) -> Optional[str]:
        """Describe enabled skills for the model, or None when none are enabled."""
        enabled = self.enabled_skills
        if not enabled:
            return None

        parts = [_MANIFEST_HEADER]
        for skill in enabled:
            parts.append(
                "---\n"
                f"ID: {skill.id}\n"
                f"Name: {skill.name}\n"
                f"Description: {skill.description}\n"
                f"Arguments schema:\n{json.dumps(skill.arguments_schema, indent=2)}\n\n"
            )
        parts.append(_MANIFEST_FOOTER)
        return "".join(parts)

    def execute(self, skill_id: str, arguments_json: str, context: SkillContext) -> SkillResult:
        """
        Run an enabled skill.

        Raises:
            SkillNotFound: unknown id
            SkillDisabled: registered but not enabled
            SkillError: raised by the skill itself
        """
        skill = self._skills.get(skill_id)
        if skill is None:
            raise SkillNotFound(skill_id)
        if skill_id not in self._enabled:
            raise SkillDisabled(skill_id)
        return skill.run(arguments_json, context)

    def __contains__(self, skill_id: str) -> bool:
        return skill_id in self._skills

    def __len__(self) -> int:
        return len(self._skills)
