"""Prompts sent to the planner at each stage of the loop.

The completeness, next-step and synthesis prompts carry the working memory
only, never raw command transcripts beyond the truncated ``raw`` cache.
"""

import json
import re

from termprobe.memory import WorkingMemory, pending_list_items

FAIL2BAN_KEYWORDS = ("fail2ban", "blocked", "banned", "jail")


def sanitize_question(question: str, max_length: int = 500) -> str:
    """Collapse newlines and cap the length of a user question."""
    return re.sub(r"[\r\n]+", " ", question).strip()[:max_length]


def _memory_json(memory: WorkingMemory) -> str:
    return json.dumps(memory.to_dict(), indent=2, ensure_ascii=False, default=str)


def build_initial_prompt(question: str, system_context: dict, max_length: int = 500) -> str:
    return f"""You are a command planner. Analyze the question below and create the initial plan of shell commands needed to answer it.

<original_question>
{sanitize_question(question, max_length)}
</original_question>

SYSTEM CONTEXT:
OS: {system_context.get("os") or "Linux"}
Distribution: {system_context.get("distro") or "Unknown"}

RULES:
- Think about the most logical first command to start the investigation.
- Use read-only diagnostic commands.

Return ONLY a JSON object with the list of initial commands:
{{
  "commands": ["command1"]
}}"""


def build_completion_prompt(question: str, memory: WorkingMemory) -> str:
    return f"""Working Memory:
{_memory_json(memory)}

Original Question: {question}

Has the question been COMPLETELY answered with the data in memory?
IMPORTANT: Respond ONLY with pure JSON, no additional text.
Format: {{"isComplete": true}} or {{"isComplete": false, "reasoning": "what is missing"}}"""


def build_iteration_hint(question: str, memory: WorkingMemory) -> str:
    """Directive requiring one command per discovered item that still lacks data."""
    lists = memory.discovered.lists
    if not lists:
        return ""

    pending = pending_list_items(lists, memory.data_extracted)
    covered = [item for item in lists if item not in pending]

    hint = (
        f"\nATTENTION: You discovered the list: [{', '.join(lists)}]\n"
        "YOU MUST RUN ONE COMMAND FOR EACH ITEM OF THIS LIST THAT HAS NO DATA YET."
    )
    if covered:
        hint += f"\nAlready have data for (do NOT query again): {', '.join(covered)}"
    if pending:
        hint += f"\nStill missing data for: {', '.join(pending)}"
        if any(k in question.lower() for k in FAIL2BAN_KEYWORDS):
            commands = ", ".join(f"fail2ban-client status {item}" for item in pending)
            hint += f"\nFor fail2ban, run the commands for the MISSING jails: {commands}"
    return hint


def build_next_step_prompt(question: str, memory: WorkingMemory, reason: str) -> str:
    return f"""Working Memory:
{_memory_json(memory)}

Original Question: {question}

Task incomplete because: {reason or "unspecified"}
{build_iteration_hint(question, memory)}

DIRECT AND MANDATORY INSTRUCTIONS:
1. If discovered.lists contains items, you MUST create commands for EACH item still missing data
2. Do NOT suggest that the user runs commands - YOU must return them
3. For fail2ban: if jails were found, run "fail2ban-client status <jail>" for EACH jail

Respond ONLY with JSON:
{{
  "commands": ["command1", "command2"],
  "updateMemory": {{
    "hypothesis": "I will check each item of the list"
  }}
}}"""


def build_synthesis_prompt(question: str, memory: WorkingMemory) -> str:
    return f"""Final Working Memory:
{_memory_json(memory)}

Original Question: {question}

Use ONLY the data in workingMemory.dataExtracted to answer.
If there is data about jails/IPs, list them with exact numbers.
Be direct and specific.

Respond ONLY with: {{"directAnswer": "direct answer with real data"}}"""
