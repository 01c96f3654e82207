"""Dataframe-level batch runs and output persistence."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

from .solver import ReasoningBooster

RESULT_COLUMNS = ["id", "task", "steps", "summary", "llm_calls"]
DEFAULT_PAYLOAD_NAME = "summary.json"


def run_batch(
    booster: ReasoningBooster,
    tasks_df: pd.DataFrame,
    *,
    id_col: str = "id",
    task_col: str = "task",
    iterations: int = 8,
    verbose: bool = True,
) -> tuple[pd.DataFrame, list[dict[str, Any]]]:
    """Solve every task in a dataframe, one session per row."""

    required = {id_col, task_col}
    missing = required - set(tasks_df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")

    rows: list[dict[str, Any]] = []
    debug_rows: list[dict[str, Any]] = []

    total = len(tasks_df)
    for idx, row in enumerate(tasks_df.itertuples(index=False), start=1):
        task_id = getattr(row, id_col)
        task = str(getattr(row, task_col))

        result = booster.solve(task, iterations=iterations)
        session = result.session

        rows.append(
            {
                "id": task_id,
                "task": task,
                "steps": len(session.state.steps),
                "summary": result.summary,
                "llm_calls": session.diagnostics.total_calls,
            }
        )
        debug_rows.append(
            {
                "id": task_id,
                "summary": result.debug_summary,
                "iterations": [item.to_dict() for item in session.history],
                "diagnostics": session.diagnostics.to_dict(),
            }
        )

        if verbose:
            print(
                f"[{idx:02d}/{total:02d}] id={task_id} steps={len(session.state.steps)} "
                f"calls={session.diagnostics.total_calls}"
            )

    return pd.DataFrame(rows, columns=RESULT_COLUMNS), debug_rows


def resolve_output_path(output_path: str | Path, base_dir: str | Path | None = None) -> Path:
    """Keep writes inside ``base_dir`` (default: cwd); anything else lands in ``summary.json``."""

    base = Path(base_dir or Path.cwd()).resolve()
    candidate = Path(output_path).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    candidate = candidate.resolve()

    if candidate == base or base not in candidate.parents:
        return base / DEFAULT_PAYLOAD_NAME
    return candidate


def save_payload(
    payload: dict[str, Any],
    output_path: str | Path = DEFAULT_PAYLOAD_NAME,
    output_format: str = "json",
    *,
    base_dir: str | Path | None = None,
) -> Path:
    """Write a solve payload as JSON, or only its summary text for ``output_format="text"``."""

    fmt = (output_format or "json").strip().lower()
    if fmt not in {"json", "text"}:
        raise ValueError(f"Unsupported output format: {output_format}")

    output = resolve_output_path(output_path, base_dir)
    output.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "text":
        output.write_text(str(payload.get("summary", "")), encoding="utf-8")
    else:
        output.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return output


def save_results(results_df: pd.DataFrame, output_path: str | Path) -> Path:
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    if list(results_df.columns) != RESULT_COLUMNS:
        results_df = results_df[RESULT_COLUMNS]

    results_df.to_csv(output, index=False)
    return output


def save_debug(debug_rows: list[dict[str, Any]], output_path: str | Path) -> Path:
    """Persist full session traces for error analysis."""

    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(debug_rows, indent=2), encoding="utf-8")
    return output
