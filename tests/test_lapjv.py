import itertools
import math

import numpy as np
import pytest

from posetrack.lapjv import lapjv, solve_dense


def _brute_force_square(cost):
    n = len(cost)
    return min(
        sum(cost[i][p[i]] for i in range(n)) for p in itertools.permutations(range(n))
    )


def _brute_force_rect(cost):
    rows, cols = cost.shape
    if rows <= cols:
        return min(
            sum(cost[i, p[i]] for i in range(rows))
            for p in itertools.permutations(range(cols), rows)
        )
    return min(
        sum(cost[p[j], j] for j in range(cols))
        for p in itertools.permutations(range(rows), cols)
    )


@pytest.mark.parametrize("n", [1, 2, 3, 4, 5, 6])
@pytest.mark.parametrize("seed", [0, 1, 2])
def test_solve_dense_is_optimal(n, seed):
    rng = np.random.default_rng(seed)
    cost = rng.random((n, n))
    x, y = solve_dense(cost)
    assert sorted(x) == list(range(n))
    total = sum(cost[i, x[i]] for i in range(n))
    assert total == pytest.approx(_brute_force_square(cost.tolist()))


@pytest.mark.parametrize("seed", [3, 4, 5])
def test_solve_dense_row_and_column_solutions_agree(seed):
    rng = np.random.default_rng(seed)
    cost = rng.integers(0, 5, size=(6, 6))  # many ties
    x, y = solve_dense(cost)
    for i, j in enumerate(x):
        assert y[j] == i


def test_solve_dense_identity_preference():
    cost = [[0.0, 1.0, 1.0], [1.0, 0.0, 1.0], [1.0, 1.0, 0.0]]
    x, y = solve_dense(cost)
    assert x == [0, 1, 2]
    assert y == [0, 1, 2]


def test_solve_dense_rejects_non_square():
    with pytest.raises(ValueError):
        solve_dense([[1.0, 2.0]])


def test_solve_dense_rejects_empty():
    with pytest.raises(ValueError):
        solve_dense(np.zeros((0, 0)))


@pytest.mark.parametrize("shape", [(2, 3), (3, 2), (1, 4), (4, 4)])
def test_lapjv_extend_cost_matches_brute_force(shape):
    rng = np.random.default_rng(sum(shape))
    cost = rng.random(shape)
    result = lapjv(cost, extend_cost=True)
    matched = [(i, j) for i, j in enumerate(result.rowsol) if j >= 0]
    assert len(matched) == min(shape)
    for i, j in matched:
        assert result.colsol[j] == i
    assert result.cost == pytest.approx(_brute_force_rect(cost))


def test_lapjv_cost_limit_leaves_expensive_pairs_unmatched():
    cost = [[0.1, 0.9], [0.9, 0.95]]
    result = lapjv(cost, extend_cost=True, cost_limit=0.8)
    assert result.rowsol == [0, -1]
    assert result.colsol == [0, -1]
    assert result.cost == pytest.approx(0.1)


def test_lapjv_cost_limit_high_matches_everything():
    rng = np.random.default_rng(7)
    cost = rng.random((3, 3))
    result = lapjv(cost, extend_cost=True, cost_limit=10.0)
    assert sorted(result.rowsol) == [0, 1, 2]
    assert result.cost == pytest.approx(_brute_force_square(cost.tolist()))


def test_lapjv_square_without_extension():
    rng = np.random.default_rng(11)
    cost = rng.random((4, 4))
    result = lapjv(cost)
    assert sorted(result.rowsol) == [0, 1, 2, 3]
    assert result.cost == pytest.approx(_brute_force_square(cost.tolist()))


def test_lapjv_without_return_cost():
    result = lapjv([[0.3, 0.7], [0.6, 0.2]], extend_cost=True, return_cost=False)
    assert result.cost == 0.0
    assert result.rowsol == [0, 1]


def test_lapjv_non_square_requires_extension():
    with pytest.raises(ValueError):
        lapjv([[0.1, 0.2, 0.3]])


def test_lapjv_rejects_empty():
    with pytest.raises(ValueError):
        lapjv(np.zeros((0, 3)), extend_cost=True)


def test_lapjv_default_limit_is_infinite():
    cost = [[5.0, 9.0], [9.0, 5.0]]
    result = lapjv(cost, cost_limit=math.inf)
    assert result.rowsol == [0, 1]
    assert result.cost == pytest.approx(10.0)