"""Configuration for the orchestration engine.

Values are resolved in order of increasing precedence: dataclass defaults,
the YAML config file, environment variables, then explicit overrides (the CLI).

Environment variables:
    TERMPROBE_CONFIG: Path to the YAML config file (default: ~/.termprobe/config.yaml)
    TERMPROBE_MAX_ITERATIONS: Command executions allowed per question (default: 10)
    TERMPROBE_MAX_EXECUTION_TIME: Wall-clock budget in milliseconds (default: 60000)
    TERMPROBE_MAX_QUESTION_LENGTH: Characters of the question sent to the planner (default: 500)
    TERMPROBE_VERBOSE: Render loop progress panels ("1", "true", "yes")
    TERMPROBE_PROVIDER: Force a planner provider (claude, openai, ollama, fake)
"""

import logging
import os
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".termprobe" / "config.yaml"

ENV_OVERRIDES = {
    "TERMPROBE_MAX_ITERATIONS": ("max_iterations", int),
    "TERMPROBE_MAX_EXECUTION_TIME": ("max_execution_time_ms", int),
    "TERMPROBE_MAX_QUESTION_LENGTH": ("max_question_length", int),
    "TERMPROBE_VERBOSE": ("verbose_logging", lambda v: v.strip().lower() in ("1", "true", "yes", "on")),
}


@dataclass
class OrchestratorConfig:
    max_iterations: int = 10
    max_execution_time_ms: int = 60000
    max_question_length: int = 500
    verbose_logging: bool = False
    dangerous_patterns: list[str] | None = None
    extra_dangerous_patterns: list[str] = field(default_factory=list)
    raw_output_chars: int = 500
    trust_memory_coverage: bool = False

    def __post_init__(self):
        for name in ("max_iterations", "max_execution_time_ms", "max_question_length", "raw_output_chars"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        for pattern in (self.dangerous_patterns or []) + self.extra_dangerous_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid dangerous pattern {pattern!r}: {e}") from e

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrchestratorConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    # Allow the settings to be nested under an "orchestrator" section
    return data.get("orchestrator", data)


def load_config(
    path: str | Path | None = None,
    env: dict[str, str] | None = None,
    **overrides: Any,
) -> OrchestratorConfig:
    """Build the effective configuration.

    Raises:
        ValueError: If any source holds an invalid value.
    """
    env = os.environ if env is None else env
    config_path = Path(path or env.get("TERMPROBE_CONFIG") or DEFAULT_CONFIG_PATH).expanduser()

    values = _read_yaml(config_path)

    for var, (key, convert) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            values[key] = convert(raw)
        except ValueError as e:
            raise ValueError(f"Invalid value for {var}: {raw!r}") from e

    values.update({k: v for k, v in overrides.items() if v is not None})
    return OrchestratorConfig.from_dict(values)


def resolve_provider(
    env: dict[str, str] | None = None,
    provider: str | None = None,
) -> tuple[str, str | None]:
    """Pick the planner provider and API key from the environment.

    An explicit ``provider`` (the CLI flag) takes precedence over
    TERMPROBE_PROVIDER; the key is always the one belonging to that provider.
    """
    env = os.environ if env is None else env
    forced = (provider or env.get("TERMPROBE_PROVIDER", "")).lower()
    if forced == "claude":
        return "claude", env.get("ANTHROPIC_API_KEY")
    if forced == "openai":
        return "openai", env.get("OPENAI_API_KEY")
    if forced in ("ollama", "fake"):
        return forced, None
    if env.get("ANTHROPIC_API_KEY"):
        return "claude", env["ANTHROPIC_API_KEY"]
    if env.get("OPENAI_API_KEY"):
        return "openai", env["OPENAI_API_KEY"]
    return "ollama", None
