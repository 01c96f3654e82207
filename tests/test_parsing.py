import unittest

from reasoning_booster.parsing import (
    extract_proposals,
    extract_with_source,
    parse_bullets,
    parse_embedded_json,
    parse_labeled_blocks,
    strip_hidden_reasoning,
)
from reasoning_booster.proposals import proposal_from_mapping, split_outcome_labels


class ExtractionTierTests(unittest.TestCase):
    def test_plain_prose_yields_nothing(self) -> None:
        self.assertEqual(extract_proposals("not json, no bullets, just prose.", 5), [])

    def test_fenced_json_wins_over_surrounding_prose(self) -> None:
        raw = (
            "Sure, here are the steps you asked for.\n"
            '```json\n[{"text":"Check X","rationale":"r","how_to_verify":"compare A and B"}]\n```\n'
            "Let me know if you need more."
        )
        result = extract_with_source(raw, 5)

        self.assertEqual(result.source, "fenced_json")
        self.assertEqual(len(result.proposals), 1)
        self.assertEqual(result.proposals[0].text, "Check X")
        self.assertEqual(result.proposals[0].how_to_verify, "compare A and B")

    def test_last_fenced_block_is_preferred(self) -> None:
        raw = (
            '```json\n[{"text": "Measure the old value"}]\n```\n'
            "Actually, better:\n"
            '```json\n[{"text": "Measure the new value"}]\n```'
        )
        proposals = extract_proposals(raw, 3)
        self.assertEqual([p.text for p in proposals], ["Measure the new value"])

    def test_embedded_array_is_found_inside_prose(self) -> None:
        raw = 'Here you go: [{"text": "Weigh C1 vs C2", "how_to_verify": "observe the tilt"}] thanks!'
        proposals = parse_embedded_json(raw)

        self.assertEqual(len(proposals), 1)
        self.assertEqual(proposals[0].text, "Weigh C1 vs C2")

    def test_embedded_array_survives_trailing_citations(self) -> None:
        citations = " ".join(f"[{i}]" for i in range(1, 60))
        raw = f'Answer: [{{"text": "Check the fuse", "rationale": "r"}}]\nSources: {citations}'

        result = extract_with_source(raw, 5)

        self.assertEqual(result.source, "embedded_json")
        self.assertEqual([p.text for p in result.proposals], ["Check the fuse"])

    def test_embedded_array_skips_entries_without_text(self) -> None:
        raw = 'Output: [{"rationale": "no text"}, {"text": "  "}, {"text": "Record the reading"}]'
        proposals = extract_proposals(raw, 5)
        self.assertEqual([p.text for p in proposals], ["Record the reading"])

    def test_result_is_truncated_to_k(self) -> None:
        items = ", ".join(f'{{"text": "Check item {i}"}}' for i in range(7))
        proposals = extract_proposals(f"[{items}]", 3)
        self.assertEqual(len(proposals), 3)

    def test_hidden_reasoning_is_ignored(self) -> None:
        raw = '<think>[{"text": "Check the secret draft"}]</think>\nText: Check the fuse\nRationale: cheap test'
        self.assertNotIn("secret", strip_hidden_reasoning(raw))

        proposals = extract_proposals(raw, 5)
        self.assertEqual([p.text for p in proposals], ["Check the fuse"])
        self.assertEqual(proposals[0].rationale, "cheap test")

    def test_empty_or_missing_input(self) -> None:
        self.assertEqual(extract_proposals(None, 5), [])
        self.assertEqual(extract_proposals("", 5), [])
        self.assertEqual(extract_proposals('[{"text": "Check X"}]', 0), [])


class LabeledBlockTests(unittest.TestCase):
    def test_labeled_blocks_with_outcomes(self) -> None:
        raw = (
            "Text: Weigh C1 vs C2 on the scale\n"
            "Rationale: splits suspects\n"
            "How_to_verify: observe the tilt\n"
            "Outcomes: balance; left / right\n"
            "\n"
            "Text: Record the result\n"
            "Rationale: keeps track\n"
        )
        proposals = parse_labeled_blocks(raw)

        self.assertEqual(len(proposals), 2)
        first, second = proposals
        self.assertEqual(first.text, "Weigh C1 vs C2 on the scale")
        self.assertEqual(first.how_to_verify, "observe the tilt")
        self.assertEqual([o.label for o in first.expected_outcomes], ["balance", "left", "right"])
        self.assertEqual(second.text, "Record the result")
        self.assertIsNone(second.how_to_verify)

    def test_placeholder_and_actionless_texts_are_rejected(self) -> None:
        raw = "Text: ...\nRationale: template echo\n\nText: A nice sunny day\n\nText: <step>\n"
        self.assertEqual(parse_labeled_blocks(raw), [])

    def test_overlong_text_is_rejected(self) -> None:
        raw = "Text: Check " + "very " * 60 + "carefully\n"
        self.assertEqual(parse_labeled_blocks(raw), [])


class BulletTests(unittest.TestCase):
    def test_bullets_attach_labeled_continuations(self) -> None:
        raw = (
            "Plan:\n"
            "1. Measure the voltage at node A\n"
            "   Verify: compare with the datasheet\n"
            "- Label each wire by colour\n"
        )
        proposals = parse_bullets(raw)

        self.assertEqual([p.text for p in proposals], ["Measure the voltage at node A", "Label each wire by colour"])
        self.assertEqual(proposals[0].how_to_verify, "compare with the datasheet")
        self.assertEqual(extract_with_source(raw, 5).source, "bullets")

    def test_unlabeled_action_line_extends_current_item(self) -> None:
        raw = "- Check the fuse\n  then measure the resistance\n"
        proposals = parse_bullets(raw)
        self.assertEqual(proposals[0].text, "Check the fuse then measure the resistance")


class ProposalValidationTests(unittest.TestCase):
    def test_outcome_labels_are_split_and_capped(self) -> None:
        self.assertEqual(split_outcome_labels("a; b / c | d, e; a"), ["a", "b", "c", "d", "e"])
        self.assertEqual(len(split_outcome_labels("1;2;3;4;5;6;7;8")), 6)

    def test_camel_case_and_object_outcomes_are_accepted(self) -> None:
        proposal = proposal_from_mapping(
            {
                "text": "Weigh C1 vs C2",
                "howToVerify": "observe",
                "expectedOutcomes": [{"label": "balance", "note": "equal"}, "left", "left"],
                "verification": {
                    "kind": "weighing",
                    "outcomes": [{"label": "balance", "stateUpdate": "clear C1 and C2"}],
                    "cost": "2",
                    "logFields": ["left", 3],
                },
            }
        )

        self.assertIsNotNone(proposal)
        self.assertEqual(proposal.how_to_verify, "observe")
        self.assertEqual([o.label for o in proposal.expected_outcomes], ["balance", "left"])
        self.assertEqual(proposal.expected_outcomes[0].note, "equal")
        self.assertEqual(proposal.verification.outcomes[0].state_update, "clear C1 and C2")
        self.assertEqual(proposal.verification.cost, 2.0)
        self.assertEqual(proposal.verification.log_fields, ("left", "3"))

    def test_non_mapping_or_textless_payload_is_dropped(self) -> None:
        self.assertIsNone(proposal_from_mapping("Check X"))
        self.assertIsNone(proposal_from_mapping({"text": 42}))
        self.assertIsNone(proposal_from_mapping({"rationale": "r"}))


if __name__ == "__main__":
    unittest.main()
