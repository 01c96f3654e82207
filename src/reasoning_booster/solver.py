"""Iteration pipeline and session layer for the reasoning booster."""

from __future__ import annotations

import random
import string
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from .beam import BeamResult, shallow_beam_search
from .client import BudgetedSampler, Sampler, SamplerDiagnostics
from .config import ReasoningConfig
from .hygiene import filter_proposals
from .parsing import extract_proposals
from .prompts import build_proposal_prompt, build_strict_prompt
from .proposals import Proposal, ScoredStep
from .scratchpad import (
    State,
    add_hints as merge_hints,
    apply_step,
    backtrack,
    initialize_scratchpad,
    is_looping,
    is_stagnating,
    summarize_solution,
    update_hints_from_candidates,
)
from .selection import choose_step, select_top, should_search, sort_by_score
from .verifier import Verifier, create_verifier

_ID_ALPHABET = string.digits + string.ascii_lowercase


class NoCandidatesError(RuntimeError):
    """Raised when an iteration ends up with no candidate steps at all."""


def _base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ID_ALPHABET[rem])
    return "".join(reversed(digits))


def make_session_id() -> str:
    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(6))
    return f"ses_{_base36(int(time.time() * 1000))}_{suffix}"


def _sample(sampler: Sampler, prompt: str, max_tokens: int | None) -> str | None:
    try:
        return sampler(prompt, max_tokens)
    except Exception:
        return None


def generate_candidate_steps(
    task: str,
    state: State,
    num_candidates: int,
    sampler: Sampler | None = None,
    max_tokens: int | None = None,
    *,
    resample_on_parse_failure: bool = False,
) -> list[Proposal]:
    """Sample, extract and filter up to ``num_candidates`` proposals.

    Without a sampler (or when sampling yields nothing usable) the pool is
    filled from the deterministic fallback templates, so the result is never
    empty for a non-empty task.
    """

    k = max(1, int(num_candidates))
    extracted: list[Proposal] = []

    if sampler is not None:
        raw = _sample(sampler, build_proposal_prompt(task, state, k), max_tokens)
        extracted = extract_proposals(raw, k)
        if not extracted and raw is not None and resample_on_parse_failure:
            raw = _sample(sampler, build_strict_prompt(task, state, k), max_tokens)
            extracted = extract_proposals(raw, k)

    return filter_proposals(extracted, state, k)


def score_candidates(
    verifier: Verifier,
    task: str,
    state: State,
    proposals: Sequence[Proposal],
) -> list[ScoredStep]:
    """Score every proposal against ``state``; highest ``total_score`` first."""

    scored = [ScoredStep(proposal=p, score=verifier.score_step(task, state, p)) for p in proposals]
    return sort_by_score(scored)


def commit_step(
    state: State,
    chosen: ScoredStep,
    config: ReasoningConfig,
) -> tuple[State, bool]:
    """Append ``chosen``; undo it again when it stagnates or loops and backtracking is allowed."""

    next_state = apply_step(state, chosen, execute_verification=config.execute_verification)
    if config.allow_backtrack and (is_stagnating(next_state) or is_looping(next_state)):
        return backtrack(next_state), True
    return next_state, False


def make_expander(
    verifier: Verifier,
    config: ReasoningConfig,
    task: str,
    sampler: Sampler | None,
):
    """Branch expansion callback for the beam search: candidates for a sub-scratchpad."""

    def expand(branch_state: State) -> list[ScoredStep]:
        proposals = generate_candidate_steps(
            task,
            branch_state,
            config.num_candidates,
            sampler,
            config.sampling_max_tokens,
            resample_on_parse_failure=config.resample_on_parse_failure,
        )
        return score_candidates(verifier, task, branch_state, proposals)

    return expand


@dataclass(frozen=True)
class IterationResult:
    chosen: ScoredStep
    candidates: tuple[ScoredStep, ...]
    new_state: State
    top: tuple[ScoredStep, ...] = ()
    backtracked: bool = False
    beam: BeamResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "chosen": self.chosen.to_dict(),
            "candidates": [c.to_dict() for c in self.candidates],
            "state": self.new_state.to_dict(),
            "backtracked": self.backtracked,
            "beamExpansions": self.beam.expansions if self.beam is not None else 0,
        }


def run_one_iteration(
    verifier: Verifier,
    config: ReasoningConfig,
    task: str,
    state: State,
    sampler: Sampler | None = None,
) -> IterationResult:
    proposals = generate_candidate_steps(
        task,
        state,
        config.num_candidates,
        sampler,
        config.sampling_max_tokens,
        resample_on_parse_failure=config.resample_on_parse_failure,
    )
    candidates = score_candidates(verifier, task, state, proposals)
    if not candidates:
        raise NoCandidatesError("No candidate steps generated")

    state = update_hints_from_candidates(state, candidates)

    top = select_top(candidates, config.top_m)
    chosen = choose_step(top, state)

    beam = None
    if should_search(chosen, state, config):
        beam = shallow_beam_search(config, state, top, make_expander(verifier, config, task, sampler))
        chosen = beam.chosen

    new_state, backtracked = commit_step(state, chosen, config)
    return IterationResult(
        chosen=chosen,
        candidates=tuple(candidates),
        new_state=new_state,
        top=tuple(top),
        backtracked=backtracked,
        beam=beam,
    )


@dataclass
class Session:
    id: str
    state: State
    config: ReasoningConfig
    history: list[IterationResult] = field(default_factory=list)
    diagnostics: SamplerDiagnostics = field(default_factory=SamplerDiagnostics)
    sampler: BudgetedSampler | None = field(default=None, repr=False)

    @property
    def sampling_enabled(self) -> bool:
        return self.sampler is not None

    def active_sampler(self) -> BudgetedSampler | None:
        """The session sampler while its call budget lasts, ``None`` afterwards."""

        if self.sampler is None or self.sampler.exhausted:
            return None
        return self.sampler


@dataclass
class SolveResult:
    session: Session
    summary: str

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def payload(self) -> dict[str, Any]:
        return {
            "sessionId": self.session.id,
            "summary": self.summary,
            "steps": [step.to_dict() for step in self.session.state.steps],
            "config": self.session.config.to_dict(),
            "diagnostics": self.session.diagnostics.to_dict(),
        }

    @property
    def debug_summary(self) -> dict[str, Any]:
        history = self.session.history
        diagnostics = self.session.diagnostics
        return {
            "session_id": self.session.id,
            "iterations": len(history),
            "steps": len(self.session.state.steps),
            "backtracks": sum(1 for item in history if item.backtracked),
            "beam_searches": sum(1 for item in history if item.beam is not None),
            "hints": len(self.session.state.hints),
            "sampling": self.session.sampling_enabled,
            "llm_calls": diagnostics.total_calls,
            "failed_calls": diagnostics.failed_calls,
            "last_error": diagnostics.last_error,
            "chosen": [item.chosen.text for item in history],
        }


class ReasoningBooster:
    """Session manager that runs the iteration pipeline against an optional sampler."""

    def __init__(
        self,
        sampler: Sampler | None = None,
        *,
        config: ReasoningConfig | None = None,
        provider: str | None = None,
        model: str | None = None,
        keep_raw_samples: bool = False,
    ) -> None:
        self.sampler = sampler
        self.config = config or ReasoningConfig()
        self.provider = provider
        self.model = model
        self.keep_raw_samples = keep_raw_samples
        self.sessions: dict[str, Session] = {}

    def _sampling_enabled(self, config: ReasoningConfig) -> bool:
        if self.sampler is None:
            return False
        if config.use_sampling is None:
            return True
        return bool(config.use_sampling)

    def start(self, task: str, config: ReasoningConfig | None = None) -> Session:
        task = (task or "").strip()
        if not task:
            raise ValueError("Missing task")

        cfg = config or self.config
        diagnostics = SamplerDiagnostics(
            provider=self.provider,
            last_model=self.model,
            keep_raw_samples=self.keep_raw_samples,
        )
        sampler = None
        if self._sampling_enabled(cfg):
            sampler = BudgetedSampler(self.sampler, max_calls=cfg.llm_max_calls, diagnostics=diagnostics)

        session = Session(
            id=make_session_id(),
            state=initialize_scratchpad(task),
            config=cfg,
            diagnostics=diagnostics,
            sampler=sampler,
        )
        self.sessions[session.id] = session
        return session

    def _resolve(self, session: Session | str) -> Session:
        if isinstance(session, Session):
            return session
        try:
            return self.sessions[session]
        except KeyError:
            raise KeyError(f"Unknown session id: {session}") from None

    def _iteration_config(self, session: Session, num_candidates: int | None) -> ReasoningConfig:
        if num_candidates:
            return session.config.with_overrides(num_candidates=int(num_candidates))
        return session.config

    def _iterate(self, session: Session, config: ReasoningConfig) -> IterationResult:
        result = run_one_iteration(
            create_verifier(config),
            config,
            session.state.task,
            session.state,
            session.active_sampler(),
        )
        session.state = result.new_state
        session.history.append(result)
        return result

    def _run_iterations(
        self,
        session: Session,
        iterations: int,
        config: ReasoningConfig,
        *,
        stop_at_max_steps: bool,
    ) -> None:
        for _ in range(max(0, int(iterations))):
            if stop_at_max_steps and len(session.state.steps) >= config.max_steps:
                break
            self._iterate(session, config)

    def step(
        self,
        session: Session | str,
        num_candidates: int | None = None,
        add_hints: Iterable[str] = (),
    ) -> IterationResult:
        """Run one iteration; caller hints are merged into the pool first."""

        current = self._resolve(session)
        extra = [h for h in add_hints if h and h.strip()]
        if extra:
            current.state = merge_hints(current.state, extra)
        return self._iterate(current, self._iteration_config(current, num_candidates))

    def multi_step(
        self,
        session: Session | str,
        iterations: int,
        num_candidates: int | None = None,
    ) -> State:
        current = self._resolve(session)
        config = self._iteration_config(current, num_candidates)
        self._run_iterations(current, iterations, config, stop_at_max_steps=False)
        return current.state

    def get_state(self, session: Session | str) -> State:
        return self._resolve(session).state

    def summarize(self, session: Session | str) -> str:
        return summarize_solution(self._resolve(session).state)

    def solve(
        self,
        task: str,
        iterations: int = 8,
        config: ReasoningConfig | None = None,
    ) -> SolveResult:
        """Start a session, run up to ``iterations`` iterations and summarize it."""

        session = self.start(task, config=config)
        self._run_iterations(session, iterations, session.config, stop_at_max_steps=True)
        return SolveResult(session=session, summary=summarize_solution(session.state))
