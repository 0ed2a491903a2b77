"""
INFOGEO Analysis Runner (CLI wrapper)

Simple CLI interface for infogeo.pipeline.

Usage:
    python -m infogeo.run --config config.yaml
    python -m infogeo.run --config config.yaml --stage spectral
    python -m infogeo.run --list

Input paths in the config are resolved relative to the config file.
Output tables are written as parquet to `output_dir`.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from shapely import wkt

from infogeo.config import AnalysisConfig, ConfigurationError, load_config
from infogeo.config.validator import require_key, validate_or_die
from infogeo.core.dependencies import resolve_stages
from infogeo.engines.core.adjacency import AdjacencyPolicy, adjacency_from_config
from infogeo.modules.counts import (
    adjacency_pairs_from_table,
    count_field_from_tables,
    read_table,
)
from infogeo.pipeline import AnalysisResult, STAGES, print_stage_info, run

logger = logging.getLogger(__name__)


def _resolve(path: str, base: Path) -> Path:
    path = Path(path)
    return path if path.is_absolute() else base / path


def build_adjacency(config: Dict[str, Any], base: Path) -> AdjacencyPolicy:
    """Adjacency policy from the config, loading pair tables / geometries as needed."""
    block = require_key(config, 'adjacency', 'graph')
    inputs = config.get('inputs') or {}
    policy = str(block.get('policy', 'distance')).lower()

    if policy == 'pairs':
        table = read_table(_resolve(require_key(inputs, 'adjacency', 'graph'), base))
        return adjacency_from_config(block, pairs=adjacency_pairs_from_table(table))

    if policy == 'boundary':
        units = read_table(_resolve(require_key(inputs, 'units', 'graph'), base))
        if 'geometry' not in units.columns:
            raise ValueError("adjacency policy 'boundary' needs a WKT 'geometry' column in the units table")
        geometries = {
            uid: wkt.loads(text)
            for uid, text in units.select(['unit_id', 'geometry']).iter_rows()
        }
        return adjacency_from_config(block, geometries=geometries)

    return adjacency_from_config(block)


def write_outputs(result: AnalysisResult, output_dir: Path) -> List[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for name, df in sorted(result.tables.items()):
        if df.is_empty():
            continue
        path = output_dir / f"{name}.parquet"
        df.write_parquet(path)
        written.append(path)
    return written


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format='%(message)s')

    parser = argparse.ArgumentParser(description="INFOGEO Analysis Runner")
    parser.add_argument("--config", help="Path to config YAML")
    parser.add_argument("--stage", choices=list(STAGES), help="Run specific stage (plus its upstream stages)")
    parser.add_argument("--output-dir", help="Override output_dir from the config")
    parser.add_argument("--list", action="store_true", help="List stages")

    args = parser.parse_args(argv)

    if args.list:
        print_stage_info()
        return 0

    if not args.config:
        parser.error("--config is required unless using --list")

    config_path = Path(args.config)
    base = config_path.parent

    try:
        raw = load_config(config_path)
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        return 1

    stages = [args.stage] if args.stage else None
    for stage in resolve_stages(stages):
        validate_or_die(raw, stage, config_path)

    config = AnalysisConfig.from_dict(raw)
    inputs = require_key(raw, 'inputs', 'inputs')

    field = count_field_from_tables(
        read_table(_resolve(require_key(inputs, 'counts', 'inputs'), base)),
        read_table(_resolve(require_key(inputs, 'units', 'inputs'), base)),
        drop_empty=not config.smooth,
    )

    adjacency = None
    if args.stage != 'tensors':
        adjacency = build_adjacency(raw, base)

    output_dir = Path(args.output_dir) if args.output_dir else None
    if output_dir is None:
        output_dir = _resolve(require_key(raw, 'output_dir', 'outputs'), base)

    result = AnalysisResult(config=config, field=field)

    print("\nINFOGEO Analysis")
    print("=" * 60)

    failed = False
    for stage_result in run(field, config, stages=stages, adjacency=adjacency, result=result):
        status = "[OK]" if stage_result.success else "[FAIL]"
        print(f"  {status} {stage_result.stage:12} -> {stage_result.output_file}.parquet")
        if stage_result.error:
            print(f"       Error: {stage_result.error}")
            failed = True
        if stage_result.n_rows > 0:
            print(f"       {stage_result.n_rows} rows, {stage_result.n_cols} columns")

    written = write_outputs(result, output_dir)
    print("=" * 60)
    print(f"  {len(written)} tables written to {output_dir}")

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
