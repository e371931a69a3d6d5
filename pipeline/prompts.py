"""Prompts and response parsing for the mode handlers."""

from __future__ import annotations

import json
import re
from typing import Any

from schemas.task import Task

DIRECT_SYSTEM_PROMPT = """You are a precise assistant. Answer the task directly and concisely.
If the task asks for structured output, respond with valid JSON only."""

REASONING_SYSTEM_PROMPT = """You are a careful analyst. Work through the task step by step,
use the supplied tool results where relevant, and finish with a complete answer.
If the task asks for structured output, end with valid JSON only."""

REFLECTION_SYSTEM_PROMPT = """You review answers for correctness and completeness.
Respond ONLY with JSON: {"confidence": <0..1>, "improvements": ["..."]}"""

SYNTHESIS_SYSTEM_PROMPT = """You reconcile answers from several models.
Identify where they agree, resolve where they disagree, and produce one unified answer."""

# Default confidence when a response carries no self-assessment
DEFAULT_RESPONSE_CONFIDENCE = 0.8

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)


def parse_json_object(content: str) -> dict[str, Any] | None:
    """Extract the first JSON object from a model response.

    Handles bare JSON, fenced code blocks and JSON embedded in prose.

    Returns:
        Parsed dict, or None if no JSON object can be parsed
    """
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        text = text.split("\n", 1)[1] if "\n" in text else text

    for candidate in (text, *(m.group(0) for m in _JSON_BLOCK.finditer(text))):
        try:
            value = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(value, dict):
            return value
    return None


def assess_quality(content: str) -> float:
    """Confidence of a response: its own "confidence" field, else the default."""
    data = parse_json_object(content)
    if data is not None:
        value = data.get("confidence")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return max(0.0, min(1.0, float(value)))
    return DEFAULT_RESPONSE_CONFIDENCE


def task_prompt(task: Task) -> str:
    """Direct prompt for a single-call answer."""
    parts = [f"Task: {task.name}" if task.name else "Task:", task.description]
    if task.input:
        parts.append(f"Input:\n{json.dumps(task.input, indent=2, default=str)}")
    if task.expected_output:
        parts.append(f"Expected output:\n{json.dumps(task.expected_output, indent=2, default=str)}")
    return "\n\n".join(p for p in parts if p)


def reasoning_prompt(
    task: Task,
    plan: list[str],
    tool_results: dict[str, Any],
    improvements: list[str] | None = None,
) -> str:
    """Step-by-step prompt for a thinking pass."""
    parts = [task_prompt(task), "Plan:\n" + "\n".join(f"{i}. {s}" for i, s in enumerate(plan, 1))]
    if tool_results:
        parts.append(f"Tool results:\n{json.dumps(tool_results, indent=2, default=str)}")
    if improvements:
        parts.append("A previous answer was judged insufficient. Address:\n"
                     + "\n".join(f"- {i}" for i in improvements))
    return "\n\n".join(parts)


def reflection_prompt(task: Task, answer: str) -> str:
    return f"{task_prompt(task)}\n\nAnswer under review:\n{answer}"


def synthesis_prompt(task: Task, answers: list[tuple[str, str]]) -> str:
    """Reconciliation prompt over (model, answer) pairs."""
    blocks = "\n\n".join(f"--- {model} ---\n{answer}" for model, answer in answers)
    return (
        f"{task_prompt(task)}\n\nAnswers:\n\n{blocks}\n\n"
        "Identify the consensus, note disagreements, and give one unified answer."
    )
