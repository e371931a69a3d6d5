"""Task and output validation."""

from __future__ import annotations

from typing import Any

from pipeline.errors import ValidationError
from pipeline.prompts import parse_json_object
from schemas.task import Task
from tools.base import ToolBackend

# Output types an expected_output schema may declare
OUTPUT_TYPES = frozenset({"text", "markdown", "json", "object"})
STRUCTURED_TYPES = frozenset({"json", "object"})


def validate_task(task: Task, tools: ToolBackend | None = None) -> None:
    """Reject a malformed task before any model call.

    Raises:
        ValidationError: If the task cannot be executed as submitted
    """
    if not task.description.strip() and not task.name.strip():
        raise ValidationError(f"Task {task.id} has neither a name nor a description")

    schema = task.expected_output
    if schema:
        output_type = schema.get("type", "text")
        if output_type not in OUTPUT_TYPES:
            raise ValidationError(
                f"Task {task.id}: unsupported output type {output_type!r} "
                f"(expected one of {', '.join(sorted(OUTPUT_TYPES))})"
            )
        required = schema.get("required", [])
        if not isinstance(required, list) or not all(isinstance(k, str) for k in required):
            raise ValidationError(f"Task {task.id}: 'required' must be a list of field names")

    if task.required_tools and tools is None:
        raise ValidationError(
            f"Task {task.id} requires tools ({', '.join(task.required_tools)}) "
            f"but no tool backend is configured"
        )


def validate_output(content: Any, expected_output: dict[str, Any]) -> list[str]:
    """Check a result against an expected_output schema.

    Returns:
        Problems found (empty when the output conforms)
    """
    if not expected_output:
        return []

    output_type = expected_output.get("type", "text")
    required = expected_output.get("required", [])

    if output_type not in STRUCTURED_TYPES and not required:
        if not str(content or "").strip():
            return ["Output is empty"]
        return []

    data = content if isinstance(content, dict) else parse_json_object(str(content or ""))
    if data is None:
        return ["Output is not a JSON object"]
    missing = [key for key in required if key not in data]
    return [f"Missing required field: {key}" for key in missing]
