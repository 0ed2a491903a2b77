"""
Shared fixtures for INFOGEO tests.
"""

import numpy as np
import pytest

from infogeo.core.field import CountField


@pytest.fixture
def two_block_field():
    """
    2x2 grid: left column all category 0, right column all category 1.

        c(0,1)  d(1,1)
        a(0,0)  b(1,0)
    """
    return CountField(
        unit_ids=['a', 'b', 'c', 'd'],
        coords=[[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]],
        counts=[[100, 0], [0, 100], [100, 0], [0, 100]],
        categories=('white', 'black'),
    )


def grid_field(n_x, n_y, counts_at, categories=None):
    """Unit grid at integer coordinates, counts from counts_at(x, y)."""
    ids, coords, counts = [], [], []
    for y in range(n_y):
        for x in range(n_x):
            ids.append(f"u{x}_{y}")
            coords.append([float(x), float(y)])
            counts.append(counts_at(x, y))
    return CountField(unit_ids=ids, coords=coords, counts=counts, categories=categories)


@pytest.fixture
def uniform_field():
    """7x7 grid with identical proportions everywhere (varying totals)."""
    return grid_field(7, 7, lambda x, y: [10 * (1 + (x + y) % 3), 30 * (1 + (x + y) % 3), 20 * (1 + (x + y) % 3)])


@pytest.fixture
def gradient_field():
    """7x7 grid whose composition changes along x only."""
    return grid_field(7, 7, lambda x, y: [10 + 10 * x, 100 - 10 * x])


@pytest.fixture
def step_field():
    """6x6 grid: x < 3 mostly category 0, x >= 3 mostly category 1."""
    return grid_field(6, 6, lambda x, y: [90, 10] if x < 3 else [10, 90])


@pytest.fixture
def timed_field():
    """3x3 grid over three periods; category 1 grows over time."""
    ids, coords, counts, times = [], [], [], []
    for t in range(3):
        for y in range(3):
            for x in range(3):
                ids.append(f"u{x}_{y}")
                coords.append([float(x), float(y)])
                counts.append([100 - 30 * t, 10 + 30 * t + 5 * x])
                times.append(t)
    return CountField(unit_ids=ids, coords=coords, counts=counts, times=times)
