"""Command-family parsers that turn raw output into working-memory facts.

Each extractor pairs a predicate on the command text with a function that
parses the output into a MemoryPatch. The registry applies every matching
extractor additively and always caches a truncated copy of the raw output.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from termprobe.memory import MemoryPatch, WorkingMemory

logger = logging.getLogger(__name__)

RAW_OUTPUT_CHARS = 500

IPV4_PATTERN = re.compile(r"\b\d{1,3}(?:\.\d{1,3}){3}\b")
JAIL_LIST_PATTERN = re.compile(r"Jail list:\s*([^\n]*)", re.IGNORECASE)
TOTAL_BANNED_PATTERN = re.compile(r"Total banned:\s*(\d+)", re.IGNORECASE)
JAIL_STATUS_COMMAND = re.compile(r"fail2ban-client\s+status\s+(\S+)\s*$")
FAILED_UNIT_PATTERN = re.compile(r"●?\s*(\S+\.service)")


@dataclass
class Extractor:
    name: str
    predicate: Callable[[str], bool]
    extract: Callable[[str, str], MemoryPatch]


def _strip_sudo(command: str) -> str:
    return re.sub(r"^\s*sudo\s+", "", command).strip()


# --- fail2ban ---


def _is_jail_list(command: str) -> bool:
    return re.fullmatch(r"fail2ban-client\s+status", _strip_sudo(command)) is not None


def _extract_jail_list(command: str, output: str) -> MemoryPatch:
    match = JAIL_LIST_PATTERN.search(output)
    if not match:
        return MemoryPatch()
    jails = [j for j in re.split(r"[,\s]+", match.group(1).strip()) if j]
    if not jails:
        return MemoryPatch()
    return MemoryPatch(
        lists=jails,
        entities={"total_jails": len(jails)},
        needs_iteration=["check each jail for blocked IPs"],
    )


def _is_jail_status(command: str) -> bool:
    return JAIL_STATUS_COMMAND.search(_strip_sudo(command)) is not None


def _extract_jail_status(command: str, output: str) -> MemoryPatch:
    jail = JAIL_STATUS_COMMAND.search(_strip_sudo(command)).group(1)
    ips = IPV4_PATTERN.findall(output)
    total = TOTAL_BANNED_PATTERN.search(output)
    count = int(total.group(1)) if total else len(ips)
    return MemoryPatch(data={"jails": {jail: {"ips": ips, "count": count}}})


# --- docker ---


def _is_docker_ps(command: str) -> bool:
    return "docker ps" in command


def _extract_docker_containers(command: str, output: str) -> MemoryPatch:
    containers = []
    for line in output.splitlines()[1:]:
        if not line.strip():
            continue
        parts = re.split(r"\s{2,}", line.strip())
        # NAMES is the seventh column of the default table format
        name = parts[6] if len(parts) > 6 else parts[0]
        if name:
            containers.append(name)
    if not containers:
        return MemoryPatch()
    return MemoryPatch(lists=containers, entities={"total_containers": len(containers)})


# --- systemd ---


def _is_failed_units(command: str) -> bool:
    return "systemctl" in command and "--failed" in command


def _extract_failed_services(command: str, output: str) -> MemoryPatch:
    services = []
    for line in output.splitlines():
        if ".service" in line and "failed" in line:
            match = FAILED_UNIT_PATTERN.search(line)
            if match and match.group(1) not in services:
                services.append(match.group(1))
    if not services:
        return MemoryPatch()
    return MemoryPatch(lists=services, entities={"failed_services": len(services)})


DEFAULT_EXTRACTORS: list[Extractor] = [
    Extractor("fail2ban_jail_list", _is_jail_list, _extract_jail_list),
    Extractor("fail2ban_jail_status", _is_jail_status, _extract_jail_status),
    Extractor("docker_containers", _is_docker_ps, _extract_docker_containers),
    Extractor("failed_services", _is_failed_units, _extract_failed_services),
]


class ExtractorRegistry:
    """Ordered collection of extractors applied to every command's output."""

    def __init__(self, extractors: list[Extractor] | None = None, raw_output_chars: int = RAW_OUTPUT_CHARS):
        self._extractors = list(DEFAULT_EXTRACTORS if extractors is None else extractors)
        self.raw_output_chars = raw_output_chars

    def register(self, extractor: Extractor) -> None:
        self._extractors.append(extractor)

    @property
    def names(self) -> list[str]:
        return [e.name for e in self._extractors]

    def matching(self, command: str) -> list[Extractor]:
        return [e for e in self._extractors if e.predicate(command)]

    def apply(self, memory: WorkingMemory, command: str, output: str) -> list[str]:
        """Patch ``memory`` from ``output``; returns the names of extractors that fired."""
        output = output or ""
        fired = []
        for extractor in self.matching(command):
            try:
                patch = extractor.extract(command, output)
            except Exception as e:
                logger.warning("Extractor %s failed on %r: %s", extractor.name, command, e)
                continue
            if not patch.is_empty():
                memory.apply(patch)
                fired.append(extractor.name)
        memory.cache_raw(command, output, self.raw_output_chars)
        if fired:
            logger.debug("Extracted data from %r via %s", command, ", ".join(fired))
        return fired
