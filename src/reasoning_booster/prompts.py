"""Prompt templates that define the proposal format expected back from the sampler."""

from __future__ import annotations

from collections.abc import Sequence

from .domain import is_weighing_task
from .scratchpad import State

RECENT_STEPS = 3
PROMPT_HINTS = 5
MAX_STEP_CHARS = 200

SAMPLER_SYSTEM_PROMPT = """You propose small, local, verifiable next steps for an open-ended task.
Follow the requested output format exactly and do not add commentary.
"""

PROPOSAL_INSTRUCTIONS = """You are the Reasoning Booster. Generate small, local, verifiable next steps for the task."""

OUTPUT_FORMAT = """Output format (preferred): a pure JSON array and nothing else, for example
[{{"text": "...", "rationale": "...", "how_to_verify": "...", "expected_outcomes": ["...", "..."]}}]
- "text": one concrete action, at most {max_chars} characters.
- "rationale": why this step helps now.
- "how_to_verify": a concrete check that shows whether the step worked.
- "expected_outcomes": 2-6 mutually exclusive outcome labels of that check.

If you cannot produce JSON, write one block per step separated by a blank line:
Text: <action>
Rationale: <why>
How_to_verify: <check>
Outcomes: <label>; <label>; <label>"""

DOMAIN_GUIDANCE = {
    "weighing": (
        "Domain hint: each step should be a single weighing of two equal groups of labeled items "
        "(e.g. 'Weigh C1, C2, C3, C4 vs C5, C6, C7, C8.') with outcomes balance; left heavy; right heavy."
    ),
    "general": "Domain hint: prefer one observation or measurement per step over broad planning.",
}


def task_domain(task: str) -> str:
    return "weighing" if is_weighing_task(task) else "general"


def _recent_steps(state: State) -> str:
    recent = state.steps[-RECENT_STEPS:]
    if not recent:
        return "(none)"
    return "\n".join(f"{step.index + 1}. {step.text}" for step in recent)


def _hints(hints: Sequence[str]) -> str:
    selected = list(hints)[-PROMPT_HINTS:]
    if not selected:
        return "(none)"
    return "\n".join(f"- {hint}" for hint in selected)


def build_proposal_prompt(task: str, state: State, num_candidates: int) -> str:
    """Compose the candidate-generation prompt sent to the sampler."""

    k = max(1, int(num_candidates))
    sections = [
        PROPOSAL_INSTRUCTIONS,
        f"Task:\n{task}",
        f"Recent steps:\n{_recent_steps(state)}",
        f"Shared hints (well-verified ideas from earlier iterations):\n{_hints(state.hints)}",
        DOMAIN_GUIDANCE[task_domain(task)],
        f"Return exactly {k} items. Steps must be short (<= {MAX_STEP_CHARS} characters), "
        "must not repeat recent steps, and must differ from each other.",
        OUTPUT_FORMAT.format(max_chars=MAX_STEP_CHARS),
    ]
    return "\n\n".join(sections)


def build_strict_prompt(task: str, state: State, num_candidates: int) -> str:
    """Second, stricter request used once when nothing could be parsed."""

    k = max(1, int(num_candidates))
    return "\n\n".join(
        [
            "Your previous answer could not be parsed.",
            f"Task:\n{task}",
            f"Recent steps:\n{_recent_steps(state)}",
            f"Return exactly {k} items as pure JSON with no other text: "
            '[{"text": "...", "rationale": "...", "how_to_verify": "...", "expected_outcomes": ["...", "..."]}]',
        ]
    )
