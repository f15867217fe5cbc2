"""Defensive parsing of planner responses.

Language models are asked for bare JSON but routinely wrap it in markdown
fences, add prose before or after it, or answer with a shell command instead.
Nothing here raises on malformed input except ``load_json_object``, which the
caller uses when a parse failure must be surfaced.
"""

import json
import re
from typing import Any

FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")

# First words that mean the model answered with a command instead of JSON
COMMAND_PREFIXES = (
    "bash", "sudo", "sh ", "fail2ban-client", "systemctl", "docker", "journalctl",
    "ls ", "cat ", "grep ", "ps ", "df ", "du ", "ss ", "netstat", "ip ",
)


def strip_fences(text: str) -> str:
    """Return the contents of the first fenced block, or the text unchanged."""
    match = FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _balanced_object(text: str, start: int) -> str | None:
    """Slice a complete ``{...}`` starting at ``start`` by counting braces."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def find_json_object(text: str, key: str | None = None) -> str | None:
    """Find the first balanced JSON object in ``text`` (containing ``key`` if given)."""
    for match in re.finditer(r"\{", text):
        candidate = _balanced_object(text, match.start())
        if candidate is None:
            continue
        if key is None or f'"{key}"' in candidate:
            return candidate
    return None


def looks_like_command(text: str) -> bool:
    stripped = text.strip()
    if not stripped or stripped.startswith("{"):
        return False
    first_line = stripped.splitlines()[0].strip().lstrip("$ ").strip()
    return first_line.startswith(COMMAND_PREFIXES)


def load_json_object(response: str | None, key: str | None = None) -> dict[str, Any]:
    """Parse a planner response into a dict.

    Tries the fenced block (or whole text) first, then falls back to the first
    balanced object mentioning ``key``.

    Raises:
        ValueError: If no JSON object can be recovered.
    """
    if not response or not response.strip():
        raise ValueError("Planner returned an empty response")

    body = strip_fences(response)
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        candidate = find_json_object(body, key) or find_json_object(response, key)
        if candidate is None:
            raise ValueError("No JSON object found in planner response")
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in planner response: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data
