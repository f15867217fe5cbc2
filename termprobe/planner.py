"""Language-model planner used by the orchestrator.

The orchestrator only depends on the ``Planner`` contract: one prompt in, one
free-text response out. ``LLMPlanner`` is the default adapter for the
supported providers.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Any

import requests

from termprobe.cancellation import CancellationToken, OrchestrationCancelled
from termprobe.errors import PlannerError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a Linux system administration assistant that plans diagnostic shell commands.
You never talk to the user directly: every reply is a single JSON object in the exact format requested.
Prefer read-only commands. Never propose commands that delete data, format disks or write to block devices."""


class Planner(ABC):
    """Contract for anything that can answer orchestrator prompts."""

    @abstractmethod
    def ask(
        self,
        prompt: str,
        system_context: dict[str, Any],
        cancel_token: CancellationToken | None = None,
    ) -> str:
        """Return the raw response text for ``prompt``.

        Implementations must raise ``OrchestrationCancelled`` promptly once
        ``cancel_token`` fires.
        """


def run_cancellable(func, cancel_token: CancellationToken | None, poll_interval: float = 0.1):
    """Run a blocking call in a worker thread, abandoning it if the token fires."""
    if cancel_token is None:
        return func()

    cancel_token.raise_if_cancelled()
    future: Future = Future()

    def _worker():
        try:
            future.set_result(func())
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=_worker, daemon=True).start()
    while not future.done():
        if cancel_token.wait(poll_interval):
            cancel_token.raise_if_cancelled()
    cancel_token.raise_if_cancelled()
    return future.result()


class LLMPlanner(Planner):
    """Planner backed by Claude, OpenAI, a local Ollama server, or a fake provider."""

    def __init__(
        self,
        api_key: str | None = None,
        provider: str = "claude",
        model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 1000,
        timeout: int = 60,
    ):
        """Initialize the planner.

        Args:
            api_key: API key for the LLM provider (unused for ollama/fake)
            provider: Provider name ("claude", "openai", "ollama" or "fake")
            model: Optional model name override
            temperature: Sampling temperature
            max_tokens: Response token limit
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.provider = provider.lower()
        self.model = model or self._default_model()
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._fake_index = 0
        self._initialize_client()

    def _default_model(self) -> str:
        if self.provider == "openai":
            return "gpt-4o"
        elif self.provider == "claude":
            return "claude-sonnet-4-20250514"
        elif self.provider == "ollama":
            return "llama3.2"
        elif self.provider == "fake":
            return "fake"
        return "gpt-4o"

    def _initialize_client(self):
        if self.provider == "openai":
            try:
                from openai import OpenAI

                self.client = OpenAI(api_key=self.api_key, timeout=self.timeout)
            except ImportError:
                raise ImportError("OpenAI package not installed. Run: pip install openai")
        elif self.provider == "claude":
            try:
                from anthropic import Anthropic

                # Suppress noisy retry logging from anthropic client
                logging.getLogger("anthropic").setLevel(logging.WARNING)
                self.client = Anthropic(api_key=self.api_key, timeout=self.timeout)
            except ImportError:
                raise ImportError("Anthropic package not installed. Run: pip install anthropic")
        elif self.provider == "ollama":
            self.ollama_url = os.environ.get("OLLAMA_HOST", "http://localhost:11434")
            self.client = None
        elif self.provider == "fake":
            self.client = None
        else:
            raise ValueError(f"Unsupported provider: {self.provider}")

    def ask(
        self,
        prompt: str,
        system_context: dict[str, Any],
        cancel_token: CancellationToken | None = None,
    ) -> str:
        logger.debug("Planner call (%s/%s), prompt of %d chars", self.provider, self.model, len(prompt))
        try:
            return run_cancellable(lambda: self._call_llm(SYSTEM_PROMPT, prompt), cancel_token)
        except OrchestrationCancelled:
            raise
        except Exception as e:
            raise PlannerError(f"LLM API call failed: {e}") from e

    def _call_llm(self, system_prompt: str, user_prompt: str) -> str:
        if self.provider == "openai":
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            try:
                content = response.choices[0].message.content or ""
            except (IndexError, AttributeError):
                content = ""
            return content.strip()

        elif self.provider == "claude":
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
            try:
                text = getattr(response.content[0], "text", None) or ""
            except (IndexError, AttributeError):
                text = ""
            return text.strip()

        elif self.provider == "ollama":
            response = requests.post(
                f"{self.ollama_url}/api/generate",
                json={
                    "model": self.model,
                    "prompt": f"{system_prompt}\n\n{user_prompt}",
                    "stream": False,
                    "options": {"temperature": self.temperature},
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json().get("response", "").strip()

        elif self.provider == "fake":
            return self._next_fake_response()

        raise ValueError(f"Unsupported provider: {self.provider}")

    def _next_fake_response(self) -> str:
        """Replay canned responses from TERMPROBE_FAKE_RESPONSES (a JSON list).

        The last response repeats once the list is exhausted.
        """
        raw = os.environ.get("TERMPROBE_FAKE_RESPONSES", "")
        if not raw:
            return json.dumps({"commands": []})
        try:
            responses = json.loads(raw)
        except json.JSONDecodeError:
            return raw
        if not isinstance(responses, list) or not responses:
            return raw
        item = responses[min(self._fake_index, len(responses) - 1)]
        self._fake_index += 1
        return item if isinstance(item, str) else json.dumps(item)
