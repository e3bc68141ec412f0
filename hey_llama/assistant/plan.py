"""
Action plans: the structured decision extracted from a model reply.

The model is asked to answer with one JSON object, either

    {"type": "respond", "text": "..."}

or

    {"type": "call_skills", "calls": [{"skillId": "...", "arguments": {...}}]}

Small models often wrap that object in markdown fences or add a sentence
around it, so parsing strips fences and pulls out the first balanced object
before decoding.
"""

import json
import logging
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, JsonValue, ValidationError, field_validator

logger = logging.getLogger(__name__)


class MalformedPlan(ValueError):
    """The model reply could not be turned into an action plan."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class SkillCall(BaseModel):
    """A named skill invocation requested by the model."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    skill_id: str = Field(alias="skillId")
    arguments: dict[str, JsonValue] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def _non_object_is_empty(cls, value):
        # Models often send null for skills without parameters
        return value if isinstance(value, dict) else {}

    def arguments_json(self) -> str:
        """Canonical JSON form handed to the skill's own argument decoder."""
        return json.dumps(self.arguments, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def dedupe_key(self) -> str:
        return f"{self.skill_id}|{self.arguments_json()}"


class RespondPlan(BaseModel):
    """Answer the user directly."""

    model_config = ConfigDict(frozen=True)

    type: Literal["respond"] = "respond"
    text: str


class CallSkillsPlan(BaseModel):
    """Run one or more skills."""

    model_config = ConfigDict(frozen=True)

    type: Literal["call_skills"] = "call_skills"
    calls: list[SkillCall]


ActionPlan = Union[RespondPlan, CallSkillsPlan]

_REQUIRED_FIELD = {"respond": "text", "call_skills": "calls"}


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence line and a trailing ``` fence."""
    result = text.strip()

    if result.startswith("```"):
        newline = result.find("\n")
        result = result[newline + 1:] if newline >= 0 else result[3:]

    result = result.strip()
    if result.endswith("```"):
        result = result[:-3]

    return result.strip()


def extract_first_json_object(text: str) -> Optional[str]:
    """Return the first balanced top-level ``{...}`` in ``text``.

    Braces inside JSON strings are ignored.
    """
    start = None
    depth = 0
    in_string = False
    escape_next = False

    for index, char in enumerate(text):
        if in_string:
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            if start is None:
                start = index
            depth += 1
        elif char == "}" and start is not None:
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    return None


def parse_action_plan(raw: str) -> ActionPlan:
    """
    Parse a model reply into an action plan.

    Raises:
        MalformedPlan: if the reply is not a JSON object, has a missing or
            unknown ``type``, or lacks the field that type requires.
    """
    cleaned = strip_code_fences(raw)
    candidate = extract_first_json_object(cleaned) or cleaned

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise MalformedPlan("invalid_json", "Invalid JSON response from model") from e

    if not isinstance(data, dict):
        raise MalformedPlan("invalid_json", "Invalid JSON response from model")

    plan_type = data.get("type")
    if not isinstance(plan_type, str):
        raise MalformedPlan("missing_type", "Missing 'type' field in action plan")
    if plan_type not in _REQUIRED_FIELD:
        raise MalformedPlan("unknown_type", f"Unknown action type: {plan_type}")

    required = _REQUIRED_FIELD[plan_type]
    if required not in data:
        raise MalformedPlan("missing_field", f"Missing required field: {required}")

    calls = data.get("calls")
    if isinstance(calls, list):
        for call in calls:
            if isinstance(call, dict) and "skillId" not in call:
                raise MalformedPlan("missing_field", "Missing required field: skillId")

    try:
        if plan_type == "respond":
            return RespondPlan.model_validate(data)
        return CallSkillsPlan.model_validate(data)
    except ValidationError as e:
        raise MalformedPlan("missing_field", f"Invalid field in action plan: {e.errors()[0]['loc']}") from e


def build_retry_prompt(original_prompt: str) -> str:
    """Corrective prompt issued once when the first reply did not parse."""
    return (
        "Return ONLY a single JSON action plan for the user request below.\n"
        "Do not add any extra text.\n\n"
        f"User request: {original_prompt}"
    )


def describe_plan(plan: ActionPlan) -> str:
    if isinstance(plan, RespondPlan):
        return "respond"
    return "call_skills -> " + ", ".join(call.skill_id for call in plan.calls)
