"""
Test Count Table Ingestion + Result Tables
==========================================
"""

import numpy as np
import polars as pl
import pytest


@pytest.fixture
def units_df():
    return pl.DataFrame({
        'unit_id': ['a', 'b', 'c'],
        'x': [0.0, 1.0, 0.0],
        'y': [0.0, 0.0, 1.0],
    })


def test_long_table_to_field(units_df):
    from infogeo.modules.counts import count_field_from_tables

    counts = pl.DataFrame({
        'unit_id': ['a', 'a', 'b', 'c', 'c'],
        'category': ['black', 'white', 'white', 'black', 'black'],
        'count': [5, 10, 7, 2, 3],
    })
    field = count_field_from_tables(counts, units_df)

    assert field.unit_ids == ['a', 'b', 'c']
    assert field.categories == ('black', 'white')
    # missing (b, black) cell is zero; duplicate (c, black) rows are summed
    assert field.counts.tolist() == [[5.0, 10.0], [0.0, 7.0], [5.0, 0.0]]
    assert field.coords.tolist() == [[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]]
    assert not field.has_time


def test_explicit_category_order(units_df):
    from infogeo.modules.counts import count_field_from_tables

    counts = pl.DataFrame({
        'unit_id': ['a', 'a', 'a'],
        'category': ['low', 'high', 'mid'],
        'count': [1, 3, 2],
    })
    field = count_field_from_tables(counts, units_df, categories=['low', 'mid', 'high'])
    assert field.counts.tolist() == [[1.0, 2.0, 3.0]]

    with pytest.raises(ValueError):
        count_field_from_tables(counts, units_df, categories=['low', 'mid'])


def test_time_column(units_df):
    from infogeo.modules.counts import count_field_from_tables

    counts = pl.DataFrame({
        'unit_id': ['a', 'b', 'a', 'b'],
        't': [2000, 2000, 2010, 2010],
        'category': ['x', 'x', 'x', 'y'],
        'count': [1, 2, 3, 4],
    })
    field = count_field_from_tables(counts, units_df)

    assert field.has_time
    assert field.node_keys == [('a', 2000.0), ('b', 2000.0), ('a', 2010.0), ('b', 2010.0)]
    assert field.distinct_times == [2000.0, 2010.0]


def test_drop_empty(units_df):
    from infogeo.modules.counts import count_field_from_tables

    counts = pl.DataFrame({
        'unit_id': ['a', 'b', 'c'],
        'category': ['x', 'x', 'y'],
        'count': [4, 0, 1],
    })

    assert count_field_from_tables(counts, units_df).n_units == 3
    kept = count_field_from_tables(counts, units_df, drop_empty=True)
    assert kept.unit_ids == ['a', 'c']


def test_rejects_bad_tables(units_df):
    from infogeo.modules.counts import count_field_from_tables

    negative = pl.DataFrame({'unit_id': ['a'], 'category': ['x'], 'count': [-1]})
    with pytest.raises(ValueError):
        count_field_from_tables(negative, units_df)

    unplaced = pl.DataFrame({'unit_id': ['zzz'], 'category': ['x'], 'count': [1]})
    with pytest.raises(ValueError):
        count_field_from_tables(unplaced, units_df)

    missing_column = pl.DataFrame({'unit_id': ['a'], 'count': [1]})
    with pytest.raises(ValueError):
        count_field_from_tables(missing_column, units_df)


def test_read_table_csv(tmp_path, units_df):
    from infogeo.modules.counts import read_table

    path = tmp_path / 'units.csv'
    units_df.write_csv(path)

    assert read_table(path).equals(units_df)
    with pytest.raises(ValueError):
        read_table(tmp_path / 'units.xlsx')


def test_field_to_long_round_trip(two_block_field):
    from infogeo.modules.counts import count_field_from_tables, field_to_long

    units = pl.DataFrame({
        'unit_id': two_block_field.unit_ids,
        'x': two_block_field.coords[:, 0],
        'y': two_block_field.coords[:, 1],
    })
    rebuilt = count_field_from_tables(
        field_to_long(two_block_field), units, categories=two_block_field.categories,
    )

    assert np.array_equal(rebuilt.counts, two_block_field.counts)


def test_tensor_table(gradient_field):
    from infogeo.engines.core.kernel_field import KernelField
    from infogeo.engines.core.metric_tensor import MetricTensorEstimator
    from infogeo.modules.tables import tensor_table

    tensors = MetricTensorEstimator(KernelField(gradient_field), 1.0).estimate_all(rows=[0, 1])
    df = tensor_table(tensors)

    assert df.height == 2
    for column in ('unit_id', 'g_xx', 'g_xy', 'g_yy', 'trace', 'determinant', 'ill_conditioned'):
        assert column in df.columns
    # no time axis: no t / temporal columns
    assert 't' not in df.columns
    assert 'temporal_entry' not in df.columns


def test_tensor_scalars(timed_field):
    from infogeo.core.field import CoordinateFrame
    from infogeo.engines.core.kernel_field import KernelField
    from infogeo.engines.core.metric_tensor import MetricTensorEstimator
    from infogeo.modules.tensor_scalars import tensor_scalars

    estimator = MetricTensorEstimator(
        KernelField(timed_field), 1.0,
        frame=CoordinateFrame.SPATIOTEMPORAL, temporal_bandwidth=1.0,
    )
    tensor = estimator.estimate(4)
    scalars = tensor_scalars(tensor)

    assert scalars['trace'] == pytest.approx(np.trace(tensor.matrix))
    assert scalars['spatial_trace'] == pytest.approx(tensor.matrix[0, 0] + tensor.matrix[1, 1])
    assert scalars['temporal_entry'] == tensor.matrix[2, 2]
    assert scalars['anisotropy'] >= 1.0
