"""LangGraph-based orchestration of the booster iteration loop."""

from __future__ import annotations

from typing import Any, TypedDict

try:
    from langgraph.graph import END, START, StateGraph
except Exception as exc:  # pragma: no cover - exercised in environments without langgraph
    END = START = StateGraph = None
    _LANGGRAPH_IMPORT_ERROR: Exception | None = exc
else:  # pragma: no cover - import has no behavior to test directly
    _LANGGRAPH_IMPORT_ERROR = None

from .beam import BeamResult, shallow_beam_search
from .client import Sampler
from .config import ReasoningConfig
from .proposals import Proposal, ScoredStep
from .scratchpad import State, update_hints_from_candidates
from .selection import choose_step, select_top, should_search
from .solver import (
    IterationResult,
    NoCandidatesError,
    ReasoningBooster,
    Session,
    commit_step,
    generate_candidate_steps,
    make_expander,
    score_candidates,
)
from .verifier import Verifier, create_verifier

# Nodes visited per iteration, plus slack for the entry and exit hops.
_NODES_PER_ITERATION = 6
_RECURSION_SLACK = 10


class LangGraphUnavailableError(RuntimeError):
    """Raised when the user selects LangGraph orchestration but dependency is missing."""


def is_langgraph_available() -> bool:
    """Return whether LangGraph runtime is importable."""

    return _LANGGRAPH_IMPORT_ERROR is None


class _GraphState(TypedDict, total=False):
    session: Session
    config: ReasoningConfig
    iterations: int
    stop_at_max_steps: bool
    iteration_index: int

    verifier: Verifier
    sampler: Sampler | None
    scratchpad: State
    proposals: list[Proposal]
    candidates: list[ScoredStep]
    top: list[ScoredStep]
    chosen: ScoredStep
    search: bool
    beam: BeamResult | None
    done: bool


class LangGraphReasoningBooster(ReasoningBooster):
    """Reasoning booster whose iteration loop runs as a LangGraph state machine."""

    def __init__(self, sampler: Sampler | None = None, **kwargs: Any) -> None:
        if not is_langgraph_available():
            raise LangGraphUnavailableError(
                "LangGraph is not installed. Install with `pip install 'reasoning-booster[agentic]'`."
            ) from _LANGGRAPH_IMPORT_ERROR

        super().__init__(sampler, **kwargs)
        self._graph = self._build_graph()

    def _run_iterations(
        self,
        session: Session,
        iterations: int,
        config: ReasoningConfig,
        *,
        stop_at_max_steps: bool,
    ) -> None:
        iterations = max(0, int(iterations))
        if iterations == 0:
            return
        self._graph.invoke(
            {
                "session": session,
                "config": config,
                "iterations": iterations,
                "stop_at_max_steps": stop_at_max_steps,
                "iteration_index": 0,
            },
            config={"recursion_limit": iterations * _NODES_PER_ITERATION + _RECURSION_SLACK},
        )

    def _build_graph(self):
        builder = StateGraph(dict)
        builder.add_node("plan", self._node_plan)
        builder.add_node("generate", self._node_generate)
        builder.add_node("score", self._node_score)
        builder.add_node("select", self._node_select)
        builder.add_node("search", self._node_search)
        builder.add_node("commit", self._node_commit)

        builder.add_edge(START, "plan")
        builder.add_conditional_edges(
            "plan",
            self._route_after_plan,
            {
                "generate": "generate",
                "end": END,
            },
        )
        builder.add_edge("generate", "score")
        builder.add_edge("score", "select")
        builder.add_conditional_edges(
            "select",
            self._route_after_select,
            {
                "search": "search",
                "commit": "commit",
            },
        )
        builder.add_edge("search", "commit")
        builder.add_edge("commit", "plan")
        return builder.compile()

    def _node_plan(self, state: _GraphState) -> _GraphState:
        session = state["session"]
        config = state["config"]
        index = int(state.get("iteration_index") or 0)

        done = index >= int(state["iterations"])
        if state.get("stop_at_max_steps") and len(session.state.steps) >= config.max_steps:
            done = True

        next_state = dict(state)
        next_state.update(
            {
                "done": done,
                "verifier": create_verifier(config),
                "sampler": session.active_sampler(),
                "scratchpad": session.state,
                "beam": None,
                "search": False,
            }
        )
        return next_state

    def _node_generate(self, state: _GraphState) -> _GraphState:
        config = state["config"]
        scratchpad = state["scratchpad"]
        proposals = generate_candidate_steps(
            scratchpad.task,
            scratchpad,
            config.num_candidates,
            state.get("sampler"),
            config.sampling_max_tokens,
            resample_on_parse_failure=config.resample_on_parse_failure,
        )
        next_state = dict(state)
        next_state["proposals"] = proposals
        return next_state

    def _node_score(self, state: _GraphState) -> _GraphState:
        scratchpad = state["scratchpad"]
        candidates = score_candidates(state["verifier"], scratchpad.task, scratchpad, state["proposals"])
        if not candidates:
            raise NoCandidatesError("No candidate steps generated")

        next_state = dict(state)
        next_state.update(
            {
                "candidates": candidates,
                "scratchpad": update_hints_from_candidates(scratchpad, candidates),
            }
        )
        return next_state

    def _node_select(self, state: _GraphState) -> _GraphState:
        config = state["config"]
        scratchpad = state["scratchpad"]
        top = select_top(state["candidates"], config.top_m)
        chosen = choose_step(top, scratchpad)

        next_state = dict(state)
        next_state.update(
            {
                "top": top,
                "chosen": chosen,
                "search": should_search(chosen, scratchpad, config),
            }
        )
        return next_state

    def _node_search(self, state: _GraphState) -> _GraphState:
        config = state["config"]
        scratchpad = state["scratchpad"]
        expand = make_expander(state["verifier"], config, scratchpad.task, state.get("sampler"))
        beam = shallow_beam_search(config, scratchpad, state["top"], expand)

        next_state = dict(state)
        next_state.update({"beam": beam, "chosen": beam.chosen})
        return next_state

    def _node_commit(self, state: _GraphState) -> _GraphState:
        session = state["session"]
        chosen = state["chosen"]
        new_state, backtracked = commit_step(state["scratchpad"], chosen, state["config"])

        session.state = new_state
        session.history.append(
            IterationResult(
                chosen=chosen,
                candidates=tuple(state["candidates"]),
                new_state=new_state,
                top=tuple(state["top"]),
                backtracked=backtracked,
                beam=state.get("beam"),
            )
        )

        next_state = dict(state)
        next_state["iteration_index"] = int(state.get("iteration_index") or 0) + 1
        return next_state

    def _route_after_plan(self, state: _GraphState) -> str:
        return "end" if bool(state.get("done")) else "generate"

    def _route_after_select(self, state: _GraphState) -> str:
        return "search" if bool(state.get("search")) else "commit"
