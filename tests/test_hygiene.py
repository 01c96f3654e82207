import re
import unittest

from reasoning_booster.domain import (
    extract_item_count,
    fallback_proposals,
    is_weighing_task,
    simulate_weighing,
    weighing_templates,
)
from reasoning_booster.hygiene import dedupe, filter_proposals, is_acceptable, rank_proposals
from reasoning_booster.proposals import Proposal, ScoreBreakdown, ScoredStep
from reasoning_booster.scratchpad import apply_step, initialize_scratchpad
from reasoning_booster.similarity import text_similarity

WEIGH_RE = re.compile(r"^Weigh (.+) vs (.+)\.$")


def _scored(text: str) -> ScoredStep:
    return ScoredStep(proposal=Proposal(text=text), score=ScoreBreakdown(0.0, 0.0, 0.0, 0.0))


class DomainTemplateTests(unittest.TestCase):
    def test_item_count_detection(self) -> None:
        self.assertEqual(extract_item_count("Weigh 12 coins to find the counterfeit"), 12)
        self.assertEqual(extract_item_count("Find the fake among nine identical balls"), 9)
        self.assertEqual(extract_item_count("Use the balance scale"), 12)
        self.assertEqual(extract_item_count("There are 500 coins"), 60)

    def test_weighing_templates_cover_all_twelve_labels(self) -> None:
        task = "Weigh 12 coins to find the counterfeit"
        self.assertTrue(is_weighing_task(task))

        covered = []
        for proposal in weighing_templates(task):
            match = WEIGH_RE.match(proposal.text)
            if not match:
                continue
            labels = [s.strip() for s in f"{match.group(1)}, {match.group(2)}".split(",")]
            covered.append(set(labels))
            self.assertTrue(proposal.has_verification_hook)
            self.assertEqual(len(match.group(1).split(",")), len(match.group(2).split(",")))

        self.assertIn({f"C{i}" for i in range(1, 13)}, covered)

    def test_simulated_outcomes(self) -> None:
        weighing = simulate_weighing("Weigh 12 coins", "Weigh C1 vs C2.")
        self.assertEqual([o.label for o in weighing], ["balance", "left", "right"])

        generic = simulate_weighing("Plan a garden", "Check the soil")
        self.assertEqual([o.label for o in generic], ["pass", "fail"])

    def test_generic_tasks_get_generic_templates(self) -> None:
        proposals = fallback_proposals("Plan a small vegetable garden")
        self.assertTrue(proposals)
        self.assertTrue(proposals[0].text.startswith("Define one measurable subgoal"))
        self.assertFalse(any(p.text.startswith("Weigh ") for p in proposals))


class HygieneFilterTests(unittest.TestCase):
    def test_meta_openers_and_overlong_texts_are_rejected(self) -> None:
        self.assertFalse(is_acceptable(Proposal(text="We must think carefully about it")))
        self.assertFalse(is_acceptable(Proposal(text="Check " * 100)))
        self.assertFalse(is_acceptable(Proposal(text="   ")))
        self.assertTrue(is_acceptable(Proposal(text="Check the fuse box")))

    def test_ranking_prefers_hooks_then_hints_then_short_text(self) -> None:
        proposals = [
            Proposal(text="Measure the current draw of the lamp"),
            Proposal(text="Inspect bulb"),
            Proposal(text="Check the fuse box", how_to_verify="multimeter reads zero"),
            Proposal(text="Inspect the lamp cable for damage"),
        ]
        ranked = rank_proposals(proposals, hints=["lamp cable damage is common"])

        self.assertEqual(
            [p.text for p in ranked],
            [
                "Check the fuse box",
                "Inspect the lamp cable for damage",
                "Inspect bulb",
                "Measure the current draw of the lamp",
            ],
        )

    def test_filter_keeps_best_proposals_within_limit(self) -> None:
        state = initialize_scratchpad("Fix the broken lamp")
        proposals = [
            Proposal(text="We must think carefully about it"),
            Proposal(text="Measure the current draw"),
            Proposal(text="Check the fuse box", how_to_verify="multimeter reads zero"),
        ]
        kept = filter_proposals(proposals, state, 2)
        self.assertEqual([p.text for p in kept], ["Check the fuse box", "Measure the current draw"])

    def test_filter_tops_up_from_templates_and_is_never_empty(self) -> None:
        state = initialize_scratchpad("Fix the broken lamp")
        kept = filter_proposals([], state, 5)
        self.assertEqual(len(kept), 5)

        single = filter_proposals([], state, 0)
        self.assertEqual(len(single), 1)

    def test_history_near_duplicates_are_dropped(self) -> None:
        state = initialize_scratchpad("Fix the broken lamp")
        state = apply_step(state, _scored("Check the fuse box"))
        kept = filter_proposals(
            [Proposal(text="check the fuse box."), Proposal(text="Measure the current draw")],
            state,
            1,
        )
        self.assertEqual([p.text for p in kept], ["Measure the current draw"])

    def test_final_pool_has_no_near_duplicates(self) -> None:
        state = initialize_scratchpad("Weigh 12 coins to find the counterfeit")
        raw = [
            Proposal(text="Weigh C1 vs C2."),
            Proposal(text="Weigh C1 vs C2"),
            Proposal(text="weigh c1 vs c2!"),
            Proposal(text="Record which pan is heavier"),
        ]
        kept = filter_proposals(raw, state, 5)

        self.assertGreaterEqual(len(kept), 2)
        self.assertIn("Record which pan is heavier", [p.text for p in kept])
        for i, a in enumerate(kept):
            for b in kept[i + 1 :]:
                self.assertLess(text_similarity(a.text, b.text), 0.92)

    def test_dedupe_keeps_first_occurrence(self) -> None:
        kept = dedupe([Proposal(text="Check A"), Proposal(text="check a"), Proposal(text="Check B")])
        self.assertEqual([p.text for p in kept], ["Check A", "Check B"])


if __name__ == "__main__":
    unittest.main()
