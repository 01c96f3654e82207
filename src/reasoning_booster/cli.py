"""Command-line interface for running reasoning-booster sessions."""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any

import pandas as pd

from .client import ChatClientSampler, OpenAICompatChatClient
from .config import DEFAULT_OPENAI_MODEL, ReasoningConfig, load_sampler_settings
from .langgraph_solver import LangGraphReasoningBooster, LangGraphUnavailableError
from .pipeline import run_batch, save_debug, save_payload, save_results
from .solver import ReasoningBooster


def _load_dotenv_if_present() -> None:
    try:
        from dotenv import load_dotenv
    except Exception:
        return

    load_dotenv(override=False)


def _add_booster_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--model", default=None)
    parser.add_argument("--base-url", default=None)
    parser.add_argument("--api-key", default=None)
    parser.add_argument("--request-timeout", type=int, default=None)
    parser.add_argument("--client-max-retries", type=int, default=None)
    parser.add_argument(
        "--orchestrator",
        choices=["classic", "langgraph"],
        default=os.getenv("REASONING_BOOSTER_ORCHESTRATOR", "classic"),
        help="Iteration runtime: classic loop or LangGraph state machine.",
    )

    parser.add_argument(
        "--profile",
        choices=["heuristic", "balanced", "deep"],
        default="balanced",
        help="heuristic: templates only; deep: wider candidate pool with beam search.",
    )
    parser.add_argument("--iterations", type=int, default=8)
    parser.add_argument("--max-steps", type=int, default=None)
    parser.add_argument("--num-candidates", type=int, default=None)
    parser.add_argument("--top-m", type=int, default=None)
    parser.add_argument("--beam-width", type=int, default=None)
    parser.add_argument("--beam-depth", type=int, default=None)
    parser.add_argument("--voi-alpha", type=float, default=None)
    parser.add_argument("--min-improvement", type=float, default=None)
    parser.add_argument("--llm-max-calls", type=int, default=None)
    parser.add_argument("--max-tokens", type=int, default=None, help="Max tokens per sampler call.")
    parser.add_argument("--no-backtrack", action="store_true")
    parser.add_argument("--execute-verification", action="store_true")
    parser.add_argument("--resample-on-parse-failure", action="store_true")
    parser.add_argument("--no-sampling", action="store_true", help="Never call a model backend.")
    parser.add_argument("--keep-raw-samples", action="store_true")


def _profile_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Return profile-specific overrides for cheaper/deeper behavior."""

    if args.profile == "heuristic":
        return {
            "use_sampling": False,
            "beam_width": 1,
            "llm_max_calls": 0,
        }

    if args.profile == "deep":
        return {
            "num_candidates": 6,
            "top_m": 3,
            "beam_width": 3,
            "beam_depth": 3,
            "llm_max_calls": 24,
            "resample_on_parse_failure": True,
        }

    return {}


def _explicit_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {
        "max_steps": args.max_steps,
        "num_candidates": args.num_candidates,
        "top_m": args.top_m,
        "beam_width": args.beam_width,
        "beam_depth": args.beam_depth,
        "voi_alpha": args.voi_alpha,
        "min_improvement": args.min_improvement,
        "llm_max_calls": args.llm_max_calls,
        "sampling_max_tokens": args.max_tokens,
    }
    if args.no_backtrack:
        overrides["allow_backtrack"] = False
    if args.execute_verification:
        overrides["execute_verification"] = True
    if args.resample_on_parse_failure:
        overrides["resample_on_parse_failure"] = True
    if args.no_sampling:
        overrides["use_sampling"] = False
    return overrides


def _build_config_from_args(args: argparse.Namespace) -> ReasoningConfig:
    return ReasoningConfig().with_overrides(**_profile_overrides(args)).with_overrides(**_explicit_overrides(args))


def _build_sampler_from_args(
    args: argparse.Namespace,
    config: ReasoningConfig,
) -> tuple[ChatClientSampler | None, str | None, str | None]:
    """Return ``(sampler, provider, model)``; no sampler when nothing is configured."""

    if config.use_sampling is False:
        return None, None, None

    settings = load_sampler_settings()
    endpoint = settings.resolve_endpoint()

    base_url = args.base_url or (endpoint[0] if endpoint else None)
    model = args.model or (endpoint[1] if endpoint else None) or DEFAULT_OPENAI_MODEL
    api_key = args.api_key or (endpoint[2] if endpoint else None)

    # A local OpenAI-compatible gateway may run without a key.
    if not base_url or not (api_key or args.base_url):
        return None, None, None

    provider = settings.provider if endpoint and not args.base_url else "custom"
    client = OpenAICompatChatClient(
        base_url=base_url,
        model=model,
        api_key=api_key,
        timeout_sec=args.request_timeout or settings.timeout_sec,
        max_retries=settings.max_retries if args.client_max_retries is None else args.client_max_retries,
    )
    return ChatClientSampler(client=client, temperature=settings.temperature), provider, model


def _build_booster_from_args(args: argparse.Namespace) -> ReasoningBooster:
    config = _build_config_from_args(args)
    sampler, provider, model = _build_sampler_from_args(args, config)

    kwargs: dict[str, Any] = {
        "config": config,
        "provider": provider,
        "model": model,
        "keep_raw_samples": bool(args.keep_raw_samples),
    }

    orchestrator = str(getattr(args, "orchestrator", "classic") or "classic").strip().lower()
    if orchestrator == "langgraph":
        try:
            return LangGraphReasoningBooster(sampler, **kwargs)
        except LangGraphUnavailableError as exc:
            raise RuntimeError(
                "LangGraph orchestrator requested but dependency is missing. "
                "Install with `pip install -e '.[agentic]'` and retry."
            ) from exc

    return ReasoningBooster(sampler, **kwargs)


def _validate_input_path(input_csv: str) -> Path:
    input_path = Path(input_csv).expanduser()
    if not input_path.exists():
        local_csvs = sorted(Path.cwd().glob("**/*.csv"))
        preview = ", ".join(str(p) for p in local_csvs[:5]) if local_csvs else "none found"
        raise FileNotFoundError(f"Input CSV not found: {input_path}. CSV files here: {preview}")
    return input_path


def cmd_solve(args: argparse.Namespace) -> None:
    booster = _build_booster_from_args(args)
    result = booster.solve(args.task, iterations=args.iterations)

    if args.output_format == "text":
        print(result.summary)
    else:
        print(json.dumps(result.payload, indent=2))

    if args.output_path:
        out = save_payload(result.payload, args.output_path, args.output_format)
        if not args.quiet:
            print(f"Saved payload: {out}")


def cmd_batch(args: argparse.Namespace) -> None:
    booster = _build_booster_from_args(args)

    input_path = _validate_input_path(args.input_csv)
    tasks = pd.read_csv(input_path)

    results_df, debug_rows = run_batch(
        booster,
        tasks,
        id_col=args.id_col,
        task_col=args.task_col,
        iterations=args.iterations,
        verbose=not args.quiet,
    )

    out = save_results(results_df, args.output_csv)
    print(f"Saved results file: {out}")

    if args.debug_json:
        debug_out = save_debug(debug_rows, args.debug_json)
        print(f"Saved debug traces: {debug_out}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reasoning booster: scored, diverse next steps for open-ended tasks")
    sub = parser.add_subparsers(dest="command", required=True)

    solve = sub.add_parser("solve", help="Run one session for a task and print the payload")
    solve.add_argument("--task", required=True)
    solve.add_argument("--output-path", default=None, help="Also save the payload (kept inside the cwd).")
    solve.add_argument("--output-format", choices=["json", "text"], default="json")
    _add_booster_args(solve)
    solve.add_argument("--quiet", action="store_true")
    solve.set_defaults(func=cmd_solve)

    batch = sub.add_parser("batch", help="Run one session per row of a CSV of tasks")
    batch.add_argument("--input-csv", required=True, help="CSV with columns id,task")
    batch.add_argument("--output-csv", default="artifacts/results.csv")
    batch.add_argument("--debug-json", default="artifacts/debug_traces.json")
    batch.add_argument("--id-col", default="id")
    batch.add_argument("--task-col", default="task")
    _add_booster_args(batch)
    batch.add_argument("--quiet", action="store_true")
    batch.set_defaults(func=cmd_batch)

    return parser


def main() -> None:
    _load_dotenv_if_present()
    parser = build_parser()
    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
