"""Working memory: the facts accumulated over one orchestration run.

Everything here grows monotonically. Lists are unioned in discovery order,
entities and extracted data are merged key by key, and nothing is ever cleared.
That property is what lets the completeness check trust ``data_extracted`` as
proof that a discovered item has been looked at.
"""

from dataclasses import dataclass, field
from typing import Any


def _union(existing: list[str], new_items) -> list[str]:
    """Append items not already present, preserving first-seen order."""
    for item in new_items or []:
        if isinstance(item, str) and item and item not in existing:
            existing.append(item)
    return existing


def _deep_merge(target: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    for key, value in patch.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _deep_merge(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            for item in value:
                if item not in current:
                    current.append(item)
        elif isinstance(current, (dict, list)):
            # A scalar never replaces collected structure
            continue
        else:
            target[key] = value
    return target


def items_with_data(data_extracted: dict[str, Any]) -> set[str]:
    """Names that have an entry under some namespace of ``data_extracted``.

    The ``raw`` cache is keyed by command, not by item, so it never counts.
    """
    covered: set[str] = set()
    for namespace, entries in data_extracted.items():
        if namespace == "raw" or not isinstance(entries, dict):
            continue
        covered.update(entries.keys())
    return covered


def pending_list_items(lists: list[str], data_extracted: dict[str, Any]) -> list[str]:
    """Discovered items that still have no extracted data, in discovery order."""
    covered = items_with_data(data_extracted)
    return [item for item in lists if item not in covered]


@dataclass
class MemoryPatch:
    """Additive update produced by an extractor or by the planner."""

    lists: list[str] = field(default_factory=list)
    entities: dict[str, Any] = field(default_factory=dict)
    needs_iteration: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.lists or self.entities or self.needs_iteration or self.data)


@dataclass
class Discovered:
    lists: list[str] = field(default_factory=list)
    entities: dict[str, Any] = field(default_factory=dict)
    needs_iteration: list[str] = field(default_factory=list)

    def merge(self, update: dict[str, Any]) -> None:
        """Merge a planner-supplied ``discovered`` mapping (camelCase keys)."""
        if not isinstance(update, dict):
            return
        lists = update.get("lists")
        if isinstance(lists, list):
            _union(self.lists, lists)
        entities = update.get("entities")
        if isinstance(entities, dict):
            _deep_merge(self.entities, entities)
        needs = update.get("needsIteration", update.get("needs_iteration"))
        if isinstance(needs, list):
            _union(self.needs_iteration, needs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lists": list(self.lists),
            "entities": dict(self.entities),
            "needsIteration": list(self.needs_iteration),
        }


@dataclass
class WorkingMemory:
    discovered: Discovered = field(default_factory=Discovered)
    hypothesis: str = ""
    data_extracted: dict[str, Any] = field(default_factory=dict)

    def apply(self, patch: MemoryPatch) -> None:
        _union(self.discovered.lists, patch.lists)
        _deep_merge(self.discovered.entities, patch.entities)
        _union(self.discovered.needs_iteration, patch.needs_iteration)
        _deep_merge(self.data_extracted, patch.data)

    def cache_raw(self, command: str, output: str, limit: int = 500) -> None:
        self.data_extracted.setdefault("raw", {})[command] = (output or "")[:limit]

    def items_missing_data(self) -> list[str]:
        return pending_list_items(self.discovered.lists, self.data_extracted)

    def all_list_items_have_data(self) -> bool:
        """True when every discovered list item already has extracted data."""
        return bool(self.discovered.lists) and not self.items_missing_data()

    def to_dict(self) -> dict[str, Any]:
        return {
            "discovered": self.discovered.to_dict(),
            "hypothesis": self.hypothesis,
            "dataExtracted": self.data_extracted,
        }
