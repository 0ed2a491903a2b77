"""
infogeo/modules/counts.py - Count table ingestion

Turns long-format count tables into a CountField.

Inputs:
    counts  (unit_id, category, count[, t])   one row per cell, missing cells = 0
    units   (unit_id, x, y)                   centroid per unit

Rows of the resulting field are sorted by (t, unit_id). Duplicate
(unit, t, category) rows are summed.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple, Union

import numpy as np
import polars as pl

from infogeo.core.field import CountField

logger = logging.getLogger(__name__)


def read_table(path: Union[str, Path]) -> pl.DataFrame:
    """Read a parquet or csv table, chosen by file suffix."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == '.parquet':
        return pl.read_parquet(path)
    if suffix in ('.csv', '.txt'):
        return pl.read_csv(path)
    raise ValueError(f"Unsupported table format: {path.name} (expected .parquet or .csv)")


def _require_columns(df: pl.DataFrame, columns: Sequence[str], name: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"{name} table is missing columns: {', '.join(missing)}")


def count_field_from_tables(
    counts: pl.DataFrame,
    units: pl.DataFrame,
    categories: Optional[Sequence[Hashable]] = None,
    unit_col: str = 'unit_id',
    category_col: str = 'category',
    count_col: str = 'count',
    time_col: str = 't',
    x_col: str = 'x',
    y_col: str = 'y',
    drop_empty: bool = False,
) -> CountField:
    """
    Build a CountField from long-format counts and unit centroids.

    Args:
        counts: Long-format counts table
        units: Unit centroid table
        categories: Category order (column order of the count matrix).
            Defaults to the sorted distinct categories.
        drop_empty: Drop (unit, t) rows whose counts are all zero

    Returns:
        CountField (with times if `time_col` is present in `counts`)
    """
    _require_columns(counts, [unit_col, category_col, count_col], 'counts')
    _require_columns(units, [unit_col, x_col, y_col], 'units')

    if counts[count_col].null_count() > 0:
        raise ValueError(f"counts.{count_col} contains nulls")
    if (counts[count_col] < 0).any():
        raise ValueError(f"counts.{count_col} contains negative values")

    has_time = time_col in counts.columns
    keys = [unit_col, time_col] if has_time else [unit_col]

    cells = (
        counts
        .group_by(keys + [category_col])
        .agg(pl.col(count_col).sum())
    )

    found = set(cells[category_col].unique().to_list())
    if categories is None:
        categories = sorted(found)
    else:
        categories = list(categories)
        unknown = found - set(categories)
        if unknown:
            raise ValueError(f"counts contain categories not in the given order: {sorted(unknown)}")
    column = {c: i for i, c in enumerate(categories)}

    coords_by_unit: Dict[Hashable, Tuple[float, float]] = {}
    for uid, x, y in units.select([unit_col, x_col, y_col]).iter_rows():
        if uid in coords_by_unit:
            raise ValueError(f"units table lists unit {uid!r} more than once")
        coords_by_unit[uid] = (float(x), float(y))

    vectors: Dict[Any, np.ndarray] = {}
    for row in cells.iter_rows(named=True):
        key = (row[unit_col], row[time_col]) if has_time else (row[unit_col], None)
        if key not in vectors:
            vectors[key] = np.zeros(len(categories), dtype=np.float64)
        vectors[key][column[row[category_col]]] += float(row[count_col])

    missing = sorted({uid for uid, _ in vectors} - set(coords_by_unit), key=str)
    if missing:
        raise ValueError(f"{len(missing)} unit(s) have counts but no coordinates, e.g. {missing[0]!r}")

    ordered = sorted(vectors, key=lambda k: (k[1] if k[1] is not None else 0, str(k[0])))

    if drop_empty:
        before = len(ordered)
        ordered = [k for k in ordered if vectors[k].sum() > 0]
        if len(ordered) < before:
            logger.info(f"Dropped {before - len(ordered)} zero-population unit rows")

    if not ordered:
        raise ValueError("No unit rows left to analyse")

    unit_ids: List[Hashable] = [k[0] for k in ordered]
    field = CountField(
        unit_ids=unit_ids,
        coords=[coords_by_unit[uid] for uid in unit_ids],
        counts=np.vstack([vectors[k] for k in ordered]),
        categories=categories,
        times=[k[1] for k in ordered] if has_time else None,
    )
    logger.info(f"Loaded {field!r}")
    return field


def adjacency_pairs_from_table(
    df: pl.DataFrame,
    a_col: str = 'unit_a',
    b_col: str = 'unit_b',
) -> List[Tuple[Hashable, Hashable]]:
    """Neighbour pairs from a two-column adjacency table."""
    _require_columns(df, [a_col, b_col], 'adjacency')
    return [(a, b) for a, b in df.select([a_col, b_col]).iter_rows()]


def field_to_long(field: CountField) -> pl.DataFrame:
    """Inverse of count_field_from_tables (counts table only, zero cells omitted)."""
    times = field.times.tolist() if field.has_time else [None] * field.n_units
    records = []
    for uid, t, row in zip(field.unit_ids, times, field.counts):
        for category, value in zip(field.categories, row):
            if value > 0:
                record = {'unit_id': uid, 'category': category, 'count': float(value)}
                if field.has_time:
                    record['t'] = t
                records.append(record)
    return pl.DataFrame(records)
