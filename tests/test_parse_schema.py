"""Tests for validation of untrusted parser model output."""

import json
import unittest

from tasklob.errors import MalformedOutputError, ParseFailure
from tasklob.parsing.schema import (
    DEFAULT_SELF_SERVICE_QUESTION,
    decode_model_output,
    validate_parse_output,
)


def _task(**overrides):
    payload = {
        "position": 1,
        "rawChunk": "fix the login bug",
        "summary": "Fix the login bug",
        "classification": "task",
    }
    payload.update(overrides)
    return payload


class DecodeModelOutputTests(unittest.TestCase):
    def test_plain_json_is_decoded(self) -> None:
        self.assertEqual(decode_model_output('{"tasks": []}'), {"tasks": []})

    def test_fenced_block_is_retried_once(self) -> None:
        raw = 'Sure! Here you go:\n```json\n{"tasks": [], "entities": []}\n```\nAnything else?'
        self.assertEqual(decode_model_output(raw), {"tasks": [], "entities": []})

    def test_non_json_raises_malformed_output(self) -> None:
        with self.assertRaises(MalformedOutputError):
            decode_model_output("I could not understand that request.")
        with self.assertRaises(MalformedOutputError):
            decode_model_output("```json\n{not json}\n```")
        with self.assertRaises(MalformedOutputError):
            decode_model_output("   ")

    def test_malformed_output_is_a_parse_failure(self) -> None:
        with self.assertRaises(ParseFailure):
            validate_parse_output('"just a string"')


class ValidateParseOutputTests(unittest.TestCase):
    def test_invalid_tasks_are_dropped_and_counted(self) -> None:
        raw = json.dumps(
            {
                "tasks": [
                    _task(),
                    {"position": 2, "classification": "task"},
                    _task(position=3, classification="chore"),
                    "not an object",
                ],
                "entities": [],
            }
        )

        result = validate_parse_output(raw)

        self.assertEqual(len(result.tasks), 1)
        self.assertEqual(result.dropped_tasks, 3)
        self.assertEqual(result.tasks[0].summary, "Fix the login bug")

    def test_optional_fields_are_defaulted(self) -> None:
        result = validate_parse_output({"tasks": [{"summary": "Call Sarah", "classification": "reminder"}]})

        task = result.tasks[0]
        self.assertEqual(task.position, 1)
        self.assertEqual(task.urgency, "normal")
        self.assertEqual(task.missing_info, ())
        self.assertEqual(task.related_entities, ())
        self.assertEqual(task.raw_chunk, "Call Sarah")
        self.assertIsNone(task.system)

    def test_positions_are_renumbered_contiguously_in_given_order(self) -> None:
        raw = {
            "tasks": [
                _task(position=7, summary="Second thing"),
                _task(position=2, summary="First thing"),
                _task(position=None, summary="Unnumbered thing"),
            ]
        }

        result = validate_parse_output(raw)

        self.assertEqual([task.position for task in result.tasks], [1, 2, 3])
        self.assertEqual(
            [task.summary for task in result.tasks],
            ["First thing", "Second thing", "Unnumbered thing"],
        )

    def test_task_limit_drops_overflow(self) -> None:
        raw = {"tasks": [_task(position=index, summary=f"Do thing {index}") for index in range(1, 26)]}

        result = validate_parse_output(raw, max_tasks=20)

        self.assertEqual(len(result.tasks), 20)
        self.assertEqual(result.dropped_tasks, 5)

    def test_classification_exclusivity_trusts_classification(self) -> None:
        raw = {
            "tasks": [
                _task(position=1, classification="task", selfServiceSteps=["a", "b"], ventingResponse="ugh"),
                _task(position=2, classification="self_service", selfServiceSteps=["Clear cache", "Log in again"], ventingResponse="ugh"),
                _task(position=3, classification="venting", selfServiceSteps=["a"], ventingResponse="That is annoying."),
                _task(position=4, classification="reminder", ventingResponse="hm"),
            ]
        }

        result = validate_parse_output(raw)

        for task in result.tasks:
            if task.classification == "self_service":
                self.assertIsNotNone(task.self_service_steps)
                self.assertIsNone(task.venting_response)
            elif task.classification == "venting":
                self.assertIsNotNone(task.venting_response)
                self.assertIsNone(task.self_service_steps)
            else:
                self.assertIsNone(task.self_service_steps)
                self.assertIsNone(task.venting_response)
        self.assertEqual(result.tasks[1].self_service_steps, ("Clear cache", "Log in again"))

    def test_self_service_without_steps_becomes_task_with_question(self) -> None:
        result = validate_parse_output({"tasks": [_task(classification="self-service")]})

        task = result.tasks[0]
        self.assertEqual(task.classification, "task")
        self.assertIsNone(task.self_service_steps)
        self.assertEqual(task.missing_info, (DEFAULT_SELF_SERVICE_QUESTION,))

    def test_venting_scenario_keeps_response_and_question(self) -> None:
        raw = {
            "tasks": [
                {
                    "position": 1,
                    "rawChunk": "WordPress keeps breaking and I can't deal with it",
                    "summary": "Look into WordPress instability",
                    "classification": "venting",
                    "system": "WordPress",
                }
            ],
            "entities": [{"mention": "WordPress", "type": "system"}],
        }

        result = validate_parse_output(raw)

        self.assertEqual(len(result.tasks), 1)
        task = result.tasks[0]
        self.assertEqual(task.classification, "venting")
        self.assertIsNotNone(task.venting_response)
        self.assertIsNone(task.self_service_steps)
        self.assertGreaterEqual(len(task.missing_info), 1)

    def test_entities_are_normalized_deduplicated_and_clamped(self) -> None:
        raw = {
            "tasks": [],
            "entities": [
                {"mention": "Sarah", "type": "person", "confidence": 0.6, "contextClues": ["call"]},
                {"mention": "sarah", "type": "person", "role": "Assignee", "confidence": 0.9, "contextClues": ["design team"]},
                {"mention": "KUTV", "type": "Organization", "confidence": 7},
                {"mention": "", "type": "person"},
                {"mention": "Mars", "type": "planet"},
            ],
        }

        result = validate_parse_output(raw)

        self.assertEqual(result.dropped_entities, 2)
        self.assertEqual(len(result.entities), 2)
        sarah, kutv = result.entities
        self.assertEqual(sarah.mention, "Sarah")
        self.assertEqual(sarah.role, "assignee")
        self.assertEqual(sarah.confidence, 0.9)
        self.assertEqual(sarah.context_clues, ("call", "design team"))
        self.assertEqual(kutv.type, "company")
        self.assertEqual(kutv.confidence, 1.0)

    def test_top_level_list_is_treated_as_tasks(self) -> None:
        result = validate_parse_output([_task()])
        self.assertEqual(len(result.tasks), 1)
        self.assertEqual(result.entities, [])

    def test_object_without_tasks_or_entities_is_malformed(self) -> None:
        with self.assertRaises(MalformedOutputError):
            validate_parse_output({"answer": "nothing here"})
        with self.assertRaises(MalformedOutputError):
            validate_parse_output({"tasks": "fix it"})


if __name__ == "__main__":
    unittest.main()
