import unittest

from reasoning_booster.config import ReasoningConfig
from reasoning_booster.langgraph_solver import LangGraphReasoningBooster, is_langgraph_available


class _ScriptedSampler:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = 0

    def __call__(self, prompt, max_tokens=None):
        if self.calls >= len(self._responses):
            return None
        out = self._responses[self.calls]
        self.calls += 1
        return out


@unittest.skipUnless(is_langgraph_available(), "langgraph is not installed")
class LangGraphBoosterTests(unittest.TestCase):
    def test_graph_run_without_backend_commits_template_steps(self) -> None:
        booster = LangGraphReasoningBooster()
        result = booster.solve("Weigh 12 coins to find the counterfeit", iterations=3)

        self.assertEqual(len(result.session.history), 3)
        self.assertEqual(len(result.session.state.steps), 3)
        self.assertTrue(result.summary.startswith("Summary:\nTask: Weigh 12 coins"))

    def test_graph_run_uses_sampler_output(self) -> None:
        sampler = _ScriptedSampler(
            [
                '[{"text": "Check the fuse", "rationale": "cheap", "how_to_verify": "meter reads zero"}]',
            ]
        )
        booster = LangGraphReasoningBooster(sampler)
        result = booster.solve("Repair the desk lamp", iterations=2)

        self.assertEqual(sampler.calls, 1)
        first_candidates = [c.text for c in result.session.history[0].candidates]
        self.assertIn("Check the fuse", first_candidates)
        self.assertIn("Check the fuse", result.session.state.hints)

    def test_graph_run_stops_at_max_steps(self) -> None:
        booster = LangGraphReasoningBooster(config=ReasoningConfig(max_steps=2))
        result = booster.solve("Plan a small vegetable garden", iterations=6)

        self.assertEqual(len(result.session.state.steps), 2)

    def test_graph_runs_beam_search_on_stall(self) -> None:
        config = ReasoningConfig(beam_width=2, beam_depth=2, min_improvement=5.0)
        booster = LangGraphReasoningBooster(config=config)
        session = booster.start("Weigh 12 coins to find the counterfeit")
        booster.multi_step(session, 2)

        self.assertIsNone(session.history[0].beam)
        self.assertIsNotNone(session.history[1].beam)
        self.assertEqual(session.history[1].beam.expansions, 2)


if __name__ == "__main__":
    unittest.main()
