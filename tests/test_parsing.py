"""Tests for planner response parsing."""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from termprobe.parsing import find_json_object, load_json_object, looks_like_command, strip_fences


class TestStripFences(unittest.TestCase):
    def test_json_fence(self):
        self.assertEqual(strip_fences('```json\n{"commands": []}\n```'), '{"commands": []}')

    def test_bare_fence(self):
        self.assertEqual(strip_fences('Here:\n```\n{"a": 1}\n```\nDone'), '{"a": 1}')

    def test_no_fence(self):
        self.assertEqual(strip_fences('  {"a": 1}  '), '{"a": 1}')


class TestFindJsonObject(unittest.TestCase):
    def test_nested_object(self):
        text = 'Plan: {"commands": ["ls"], "updateMemory": {"hypothesis": "x"}} ok'
        self.assertEqual(
            find_json_object(text),
            '{"commands": ["ls"], "updateMemory": {"hypothesis": "x"}}',
        )

    def test_braces_inside_strings(self):
        text = '{"commands": ["awk \'{print $1}\' /etc/passwd"]}'
        self.assertEqual(find_json_object(text), text)

    def test_key_selects_object(self):
        text = 'Example {"foo": 1} then {"isComplete": true}'
        self.assertEqual(find_json_object(text, key="isComplete"), '{"isComplete": true}')

    def test_unbalanced(self):
        self.assertIsNone(find_json_object('{"commands": ["ls"'))


class TestLooksLikeCommand(unittest.TestCase):
    def test_commands(self):
        for text in [
            "sudo fail2ban-client status sshd",
            "fail2ban-client status",
            "$ docker ps",
            "systemctl --failed\nthen check logs",
        ]:
            with self.subTest(text=text):
                self.assertTrue(looks_like_command(text))

    def test_not_commands(self):
        for text in ["", '{"isComplete": true}', "The task is complete.", "I would run docker ps"]:
            with self.subTest(text=text):
                self.assertFalse(looks_like_command(text))


class TestLoadJsonObject(unittest.TestCase):
    def test_plain(self):
        self.assertEqual(load_json_object('{"commands": ["uptime"]}'), {"commands": ["uptime"]})

    def test_fenced(self):
        self.assertEqual(
            load_json_object('```json\n{"directAnswer": "42"}\n```', key="directAnswer"),
            {"directAnswer": "42"},
        )

    def test_prose_around_json(self):
        response = 'Sure, here you go: {"isComplete": false, "reasoning": "need more"}. Hope it helps!'
        self.assertEqual(
            load_json_object(response, key="isComplete"),
            {"isComplete": False, "reasoning": "need more"},
        )

    def test_empty_response(self):
        with self.assertRaises(ValueError):
            load_json_object("")
        with self.assertRaises(ValueError):
            load_json_object(None)

    def test_prose_only(self):
        with self.assertRaises(ValueError):
            load_json_object("I think the answer is 3.")

    def test_non_object_json(self):
        with self.assertRaises(ValueError):
            load_json_object('["uptime"]')


if __name__ == "__main__":
    unittest.main()
