from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Mapping, Optional


_BOOLEAN_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration assembled from environment variables and CLI options."""

    table_path: Optional[Path]
    rules_path: Optional[Path]
    discount_toggles_path: Optional[Path]
    hidden_rows_path: Optional[Path]
    output_dir: Path
    output_json: Path
    headcount: Optional[float]
    disable_playbooks: bool
    verbose: bool = False


def _to_path(value: object | None) -> Optional[Path]:
    if value is None:
        return None
    if isinstance(value, Path):
        return value.expanduser().resolve()
    text = str(value).strip()
    if not text:
        return None
    return Path(text).expanduser().resolve()


def _to_float(value: object | None) -> Optional[float]:
    if value is None:
        return None
    text = str(value).replace(",", "").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _flag(value: object | None) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _BOOLEAN_TRUE


def _namespace(cli_args: object | None) -> SimpleNamespace:
    if cli_args is None:
        return SimpleNamespace()
    if isinstance(cli_args, SimpleNamespace):
        return cli_args
    if hasattr(cli_args, "__dict__"):
        return SimpleNamespace(**{k: v for k, v in vars(cli_args).items()})
    return SimpleNamespace()


def load_config(env: Mapping[str, str], cli_args: object | None = None) -> Config:
    """Build a runtime :class:`Config` from environment variables and CLI options."""

    default_output_dir = (Path.cwd() / "outputs").resolve()

    table_path = _to_path(env.get("COMPARISON_TABLE_JSON"))
    rules_path = _to_path(env.get("PLAYBOOK_RULES_FILE"))
    toggles_path = _to_path(env.get("DISCOUNT_TOGGLES_FILE"))
    hidden_path = _to_path(env.get("HIDDEN_ROWS_FILE"))
    output_dir = _to_path(env.get("OUTPUT_DIR")) or default_output_dir
    output_json = _to_path(env.get("OUTPUT_JSON"))
    headcount = _to_float(env.get("NORMALIZED_HEADCOUNT"))
    disable_playbooks = _flag(env.get("DISABLE_PLAYBOOKS"))
    verbose = False

    cli_ns = _namespace(cli_args)
    if getattr(cli_ns, "table", None):
        table_path = _to_path(cli_ns.table) or table_path
    if getattr(cli_ns, "rules", None):
        rules_path = _to_path(cli_ns.rules)
    if getattr(cli_ns, "toggles", None):
        toggles_path = _to_path(cli_ns.toggles)
    if getattr(cli_ns, "hidden", None):
        hidden_path = _to_path(cli_ns.hidden)
    if getattr(cli_ns, "output_dir", None):
        output_dir = _to_path(cli_ns.output_dir) or output_dir
        output_json = None
    if getattr(cli_ns, "output", None):
        output_json = _to_path(cli_ns.output)
    if getattr(cli_ns, "headcount", None) is not None:
        headcount = _to_float(cli_ns.headcount)
    if getattr(cli_ns, "disable_playbooks", False):
        disable_playbooks = True
    if getattr(cli_ns, "verbose", False):
        verbose = bool(cli_ns.verbose)

    if output_json is None:
        stem = table_path.stem if table_path else "comparison"
        output_json = (output_dir / f"{stem}_recalculated.json").resolve()

    return Config(
        table_path=table_path,
        rules_path=rules_path,
        discount_toggles_path=toggles_path,
        hidden_rows_path=hidden_path,
        output_dir=output_dir,
        output_json=output_json,
        headcount=headcount,
        disable_playbooks=disable_playbooks,
        verbose=verbose,
    )


__all__ = ["Config", "load_config"]
