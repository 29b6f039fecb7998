import argparse
import json
import logging
import os
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from .api import RefreshOptions, refresh
from .config import Config
from .config import load_config as load_runtime_config
from .models import ComparisonTable, DiscountToggles, normalize_hidden_rows
from .playbooks.store import RuleStore
from .reporting import make_summary_text

load_dotenv()

logger = logging.getLogger(__name__)


def _read_json(path: Optional[Path], default: object) -> object:
    if path is None:
        return default
    if not path.exists():
        logger.warning("Warning: %s not found; using defaults", path)
        return default
    return json.loads(path.read_text(encoding="utf-8"))


def _load_toggles(path: Optional[Path]) -> DiscountToggles:
    raw = _read_json(path, {})
    if not isinstance(raw, dict):
        raise ValueError(f"Discount toggles in {path} must be a JSON object")
    return {
        str(vendor): {str(row_id): bool(enabled) for row_id, enabled in (rows or {}).items()}
        for vendor, rows in raw.items()
    }


def run(runtime_config: Optional[Config] = None) -> int:
    cfg = runtime_config or load_runtime_config(os.environ, None)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    stage_counter = 0

    def log_stage(message: str) -> None:
        nonlocal stage_counter
        stage_counter += 1
        logger.info("[pipeline:%02d] %s", stage_counter, message)

    def log_detail(message: str) -> None:
        logger.info("           %s", message)

    if cfg.table_path is None:
        logger.error("No comparison table given; pass a table JSON path or set COMPARISON_TABLE_JSON")
        return 2
    if not cfg.table_path.exists():
        logger.error("Comparison table %s does not exist", cfg.table_path)
        return 2

    log_stage(f"Loading comparison table from {cfg.table_path}")
    table = ComparisonTable.from_dict(json.loads(cfg.table_path.read_text(encoding="utf-8")))
    log_detail(f"vendors={', '.join(table.vendors)} | sections={len(table.sections)}")

    toggles = _load_toggles(cfg.discount_toggles_path)
    hidden = normalize_hidden_rows(_read_json(cfg.hidden_rows_path, []))
    if toggles or hidden:
        log_detail(f"discount toggles for {len(toggles)} vendor(s) | hidden rows={len(hidden)}")

    rules = []
    if cfg.disable_playbooks:
        log_stage("Playbook rules disabled")
    elif cfg.rules_path is not None:
        store = RuleStore.load(cfg.rules_path)
        rules = store.enabled_rules()
        log_stage(f"Loaded {len(rules)} enabled playbook rule(s) from {cfg.rules_path}")

    log_stage("Recalculating subtotals and totals")
    result = refresh(
        table,
        RefreshOptions(discount_toggles=toggles, hidden_rows=hidden, rules=rules, headcount=cfg.headcount),
    )
    if result.rescaled:
        log_detail(f"rescaled recurring fees to {cfg.headcount:g} employees")
    if rules:
        log_detail(f"playbook rules modified {result.rules_applied} cell(s)")
    for note in result.notes:
        logger.warning("Warning: %s", note)

    cfg.output_json.parent.mkdir(parents=True, exist_ok=True)
    cfg.output_json.write_text(json.dumps(result.table.to_dict(), indent=2), encoding="utf-8")
    log_stage(f"Wrote {cfg.output_json}")

    for line in make_summary_text(result.table).splitlines():
        log_detail(line)
    return 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recalculate a vendor proposal comparison table")
    parser.add_argument("table", nargs="?", help="Comparison table JSON document")
    parser.add_argument("--rules", help="Playbook rule file (JSON or YAML)")
    parser.add_argument("--toggles", help="Discount toggles JSON ({vendor: {row_id: bool}})")
    parser.add_argument("--hidden", help="Hidden rows JSON (list of row ids)")
    parser.add_argument("--headcount", type=float, help="Rescale recurring fees to this headcount")
    parser.add_argument("--output-dir", help="Directory for the recalculated table")
    parser.add_argument("-o", "--output", help="Exact path for the recalculated table JSON")
    parser.add_argument("--disable-playbooks", action="store_true", help="Do not apply playbook rules")
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase logging verbosity")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    runtime_cfg = load_runtime_config(os.environ, args)
    log_level = logging.DEBUG if runtime_cfg.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(message)s")
    try:
        return run(runtime_config=runtime_cfg)
    except Exception:  # pragma: no cover - defensive
        logger.exception("Fatal error during comparison recalculation")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
