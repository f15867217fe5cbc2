"""Tests for working memory."""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from termprobe.memory import (
    Discovered,
    MemoryPatch,
    WorkingMemory,
    items_with_data,
    pending_list_items,
)


class TestPendingItems(unittest.TestCase):
    def test_pending_in_discovery_order(self):
        data = {"jails": {"sshd": {"ips": ["1.2.3.4"], "count": 1}}}
        self.assertEqual(pending_list_items(["sshd", "apache"], data), ["apache"])

    def test_raw_cache_does_not_count(self):
        data = {"raw": {"sshd": "looks like a key but is a command"}}
        self.assertEqual(pending_list_items(["sshd"], data), ["sshd"])

    def test_any_namespace_counts(self):
        data = {"containers": {"web": {"status": "up"}}, "jails": {"sshd": {}}}
        self.assertEqual(items_with_data(data), {"web", "sshd"})

    def test_non_dict_namespaces_ignored(self):
        self.assertEqual(items_with_data({"summary": "text", "counts": [1, 2]}), set())


class TestDiscoveredMerge(unittest.TestCase):
    def test_lists_are_unioned(self):
        discovered = Discovered(lists=["sshd", "apache"])
        discovered.merge({"lists": ["apache", "nginx"]})
        self.assertEqual(discovered.lists, ["sshd", "apache", "nginx"])

    def test_empty_list_never_clears(self):
        discovered = Discovered(lists=["sshd", "apache"])
        discovered.merge({"lists": []})
        self.assertEqual(discovered.lists, ["sshd", "apache"])

    def test_entities_update_key_by_key(self):
        discovered = Discovered(entities={"total_jails": 2, "host": "web1"})
        discovered.merge({"entities": {"total_jails": 3}})
        self.assertEqual(discovered.entities, {"total_jails": 3, "host": "web1"})

    def test_scalar_never_replaces_structure(self):
        discovered = Discovered(entities={"jails": {"sshd": {"count": 2}}, "ports": [22, 80]})
        discovered.merge({"entities": {"jails": "unknown", "ports": 443, "host": "web1"}})
        self.assertEqual(
            discovered.entities,
            {"jails": {"sshd": {"count": 2}}, "ports": [22, 80], "host": "web1"},
        )

    def test_needs_iteration_accepts_both_spellings(self):
        discovered = Discovered()
        discovered.merge({"needsIteration": ["check jails"]})
        discovered.merge({"needs_iteration": ["check jails", "check containers"]})
        self.assertEqual(discovered.needs_iteration, ["check jails", "check containers"])

    def test_ignores_malformed_update(self):
        discovered = Discovered(lists=["sshd"])
        discovered.merge("not a mapping")
        discovered.merge({"lists": "sshd,apache", "entities": ["x"]})
        self.assertEqual(discovered.lists, ["sshd"])
        self.assertEqual(discovered.entities, {})


class TestWorkingMemory(unittest.TestCase):
    def setUp(self):
        self.memory = WorkingMemory()

    def test_apply_patch(self):
        self.memory.apply(MemoryPatch(
            lists=["sshd", "apache"],
            entities={"total_jails": 2},
            needs_iteration=["check each jail for blocked IPs"],
        ))
        self.memory.apply(MemoryPatch(data={"jails": {"sshd": {"ips": ["1.2.3.4"], "count": 1}}}))
        self.memory.apply(MemoryPatch(data={"jails": {"apache": {"ips": [], "count": 0}}}))

        self.assertEqual(self.memory.discovered.lists, ["sshd", "apache"])
        self.assertEqual(set(self.memory.data_extracted["jails"]), {"sshd", "apache"})
        self.assertTrue(self.memory.all_list_items_have_data())

    def test_lists_only_grow(self):
        self.memory.apply(MemoryPatch(lists=["sshd", "apache"]))
        self.memory.apply(MemoryPatch(lists=["web", "sshd"]))
        self.assertEqual(self.memory.discovered.lists, ["sshd", "apache", "web"])

    def test_nested_data_lists_are_unioned(self):
        self.memory.apply(MemoryPatch(data={"jails": {"sshd": {"ips": ["1.2.3.4"]}}}))
        self.memory.apply(MemoryPatch(data={"jails": {"sshd": {"ips": ["1.2.3.4", "5.6.7.8"]}}}))
        self.assertEqual(self.memory.data_extracted["jails"]["sshd"]["ips"], ["1.2.3.4", "5.6.7.8"])

    def test_items_missing_data(self):
        self.memory.apply(MemoryPatch(lists=["sshd", "apache"]))
        self.memory.apply(MemoryPatch(data={"jails": {"apache": {"count": 0}}}))
        self.assertEqual(self.memory.items_missing_data(), ["sshd"])
        self.assertFalse(self.memory.all_list_items_have_data())

    def test_empty_lists_are_not_covered(self):
        self.assertFalse(self.memory.all_list_items_have_data())

    def test_cache_raw_truncates(self):
        self.memory.cache_raw("journalctl -n 1000", "x" * 2000)
        self.assertEqual(len(self.memory.data_extracted["raw"]["journalctl -n 1000"]), 500)

        self.memory.cache_raw("uptime", None, limit=10)
        self.assertEqual(self.memory.data_extracted["raw"]["uptime"], "")

    def test_to_dict_uses_wire_keys(self):
        self.memory.hypothesis = "check each jail"
        self.memory.apply(MemoryPatch(lists=["sshd"], needs_iteration=["check jails"]))
        self.assertEqual(
            self.memory.to_dict(),
            {
                "discovered": {
                    "lists": ["sshd"],
                    "entities": {},
                    "needsIteration": ["check jails"],
                },
                "hypothesis": "check each jail",
                "dataExtracted": {},
            },
        )

    def test_patch_is_empty(self):
        self.assertTrue(MemoryPatch().is_empty())
        self.assertFalse(MemoryPatch(entities={"total": 0}).is_empty())


if __name__ == "__main__":
    unittest.main()
