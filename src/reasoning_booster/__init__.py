"""Reasoning booster: scored, diverse and verifiable next steps for open-ended tasks."""

from .client import BudgetedSampler, ChatClientSampler, OpenAICompatChatClient, SamplerDiagnostics
from .config import ReasoningConfig, SamplerSettings, load_sampler_settings
from .parsing import extract_proposals
from .proposals import Proposal, ScoreBreakdown, ScoredStep
from .scratchpad import (
    State,
    apply_step,
    backtrack,
    initialize_scratchpad,
    is_looping,
    is_stagnating,
    summarize_solution,
)
from .solver import (
    IterationResult,
    NoCandidatesError,
    ReasoningBooster,
    Session,
    SolveResult,
    run_one_iteration,
    score_candidates,
)
from .verifier import Verifier, create_verifier

__all__ = [
    "BudgetedSampler",
    "ChatClientSampler",
    "OpenAICompatChatClient",
    "SamplerDiagnostics",
    "ReasoningConfig",
    "SamplerSettings",
    "load_sampler_settings",
    "extract_proposals",
    "Proposal",
    "ScoreBreakdown",
    "ScoredStep",
    "State",
    "apply_step",
    "backtrack",
    "initialize_scratchpad",
    "is_looping",
    "is_stagnating",
    "summarize_solution",
    "IterationResult",
    "NoCandidatesError",
    "ReasoningBooster",
    "Session",
    "SolveResult",
    "run_one_iteration",
    "score_candidates",
    "Verifier",
    "create_verifier",
]
