"""JSON schemas for inbound payloads and the settings file."""

from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match

from .errors import ValidationError

MONEY_PATTERN = r"^\d+(\.\d{1,2})?$"

TASK_CREATE_SCHEMA = {
    "type": "object",
    "required": ["title", "description", "category", "budget", "deadline"],
    "properties": {
        "title": {"type": "string", "minLength": 1, "maxLength": 200},
        "description": {"type": "string", "minLength": 1},
        "category": {
            "enum": [
                "video-editing", "video_editing",
                "web-development", "web_development",
                "design", "writing", "other",
            ],
        },
        "budget": {
            "oneOf": [
                {"type": "number", "exclusiveMinimum": 0},
                {"type": "string", "pattern": MONEY_PATTERN},
            ]
        },
        "deadline": {"type": "string", "minLength": 10},
        "priority": {"enum": ["low", "medium", "high", "urgent"]},
        "revision_limit": {"type": "integer", "minimum": 0},
    },
    "additionalProperties": False,
}

SETTINGS_SCHEMA = {
    "type": "object",
    "properties": {
        "platform_commission_pct": {"type": "number", "minimum": 0, "maximum": 100},
        "default_revision_limit": {"type": "integer", "minimum": 0},
        "revision_deadline_extension_hours": {"type": "integer", "minimum": 0},
        "default_max_active_tasks": {"type": "integer", "minimum": 1},
        "default_completion_rate": {"type": "number", "minimum": 0, "maximum": 100},
        "data_dir": {"type": "string"},
    },
    "additionalProperties": False,
}


def validate_payload(data: Any, schema: dict) -> None:
    """Raise ValidationError describing the most relevant schema violation."""
    error = best_match(Draft202012Validator(schema).iter_errors(data))
    if error is None:
        return
    field = ".".join(str(part) for part in error.absolute_path) or "payload"
    raise ValidationError(field, error.instance if error.absolute_path else None, error.message)
