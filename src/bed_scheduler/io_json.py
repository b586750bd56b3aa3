"""
JSON serialisation / deserialisation for solver settings (Config objects).

Uses only the Python standard-library json module. Basic structural
validation is applied before domain objects are built, so a typo in a
settings file fails loudly instead of silently falling back to defaults.

Reference: Python docs — json
https://docs.python.org/3/library/json.html
"""

from __future__ import annotations

import json
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict

from bed_scheduler.models import Config, SolverParams, Weights


class ConfigError(ValueError):
    """Raised when the config JSON is structurally invalid."""


def _as_dict(obj: Any, ctx: str) -> Dict[str, Any]:
    if not isinstance(obj, dict):
        raise ConfigError(
            f"Expected a JSON object in {ctx}, got {type(obj).__name__}"
        )
    return obj


def _check_keys(raw: Dict[str, Any], cls: type, ctx: str) -> None:
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigError(f"Unknown key(s) in {ctx}: {sorted(unknown)}")


def _number(raw: Dict[str, Any], key: str, default: Any, cast: type, ctx: str) -> Any:
    value = raw.get(key, default)
    if value is None:
        return None
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{ctx}.{key} must be {cast.__name__}, got {value!r}") from None


def config_from_dict(raw: Dict[str, Any]) -> Config:
    raw = _as_dict(raw, "root")
    meta        = _as_dict(raw.get("meta") or {}, "meta")
    weights_raw = _as_dict(raw.get("weights") or {}, "weights")
    solver_raw  = _as_dict(raw.get("solver")  or {}, "solver")
    _check_keys(weights_raw, Weights, "weights")
    _check_keys(solver_raw, SolverParams, "solver")

    dw = Weights()
    weights = Weights(**{
        f.name: _number(weights_raw, f.name, getattr(dw, f.name), int, "weights")
        for f in fields(Weights)
    })

    ds = SolverParams()
    move_weights = _as_dict(solver_raw.get("move_weights") or ds.move_weights,
                            "solver.move_weights")
    solver = SolverParams(
        seed                 = _number(solver_raw, "seed", ds.seed, int, "solver"),
        max_attempts         = _number(solver_raw, "max_attempts", ds.max_attempts, int, "solver"),
        max_iterations       = _number(solver_raw, "max_iterations", ds.max_iterations, int, "solver"),
        max_time_in_seconds  = _number(solver_raw, "max_time_in_seconds", ds.max_time_in_seconds, float, "solver"),
        tabu_tenure          = _number(solver_raw, "tabu_tenure", ds.tabu_tenure, int, "solver"),
        tenure_factor        = _number(solver_raw, "tenure_factor", ds.tenure_factor, float, "solver"),
        batch_size           = _number(solver_raw, "batch_size", ds.batch_size, int, "solver"),
        move_weights         = {
            str(k): _number(move_weights, k, 0.0, float, "solver.move_weights")
            for k in move_weights
        },
        overcrowd_threshold  = _number(solver_raw, "overcrowd_threshold", ds.overcrowd_threshold, float, "solver"),
        max_idle_batches     = _number(solver_raw, "max_idle_batches", ds.max_idle_batches, int, "solver"),
        construction_workers = _number(solver_raw, "construction_workers", ds.construction_workers, int, "solver"),
        scoring_workers      = _number(solver_raw, "scoring_workers", ds.scoring_workers, int, "solver"),
        log_every            = _number(solver_raw, "log_every", ds.log_every, int, "solver"),
        num_workers          = _number(solver_raw, "num_workers", ds.num_workers, int, "solver"),
    )

    cfg = Config(meta=meta, weights=weights, solver=solver)
    try:
        cfg.validate()
    except ValueError as e:
        raise ConfigError(str(e)) from e
    return cfg


def load_config(path: str | Path) -> Config:
    """Load and validate a Config from a JSON file."""
    with Path(path).open("r", encoding="utf-8") as f:
        raw = json.load(f)
    return config_from_dict(raw)


def save_config(cfg: Config, path: str | Path) -> None:
    """Serialise Config to JSON, creating parent directories if needed."""
    cfg.validate()
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        # sort_keys=True keeps diffs readable in version control.
        json.dump(cfg.to_dict(), f, ensure_ascii=False, indent=2, sort_keys=True)
