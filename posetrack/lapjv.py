"""Jonker-Volgenant solver for dense linear assignment problems."""

from __future__ import annotations

import math
from typing import List, NamedTuple, Sequence, Tuple

import numpy as np

LARGE = 1000000


class Assignment(NamedTuple):
    """Result of :func:`lapjv`: total cost and row/column assignments (-1 = unmatched)."""

    cost: float
    rowsol: List[int]
    colsol: List[int]


def _column_reduction(cost: List[List[float]], n: int):
    """Column reduction and reduction transfer; returns free rows, x, y, v."""
    x = [-1] * n
    v = [float(LARGE)] * n
    y = [0] * n
    for i, row in enumerate(cost):
        for j, c in enumerate(row):
            if c < v[j]:
                v[j] = c
                y[j] = i

    unique = [True] * n
    for j in reversed(range(n)):
        i = y[j]
        if x[i] < 0:
            x[i] = j
        else:
            unique[i] = False
            y[j] = -1

    free_rows: List[int] = []
    for i in range(n):
        if x[i] < 0:
            free_rows.append(i)
        elif unique[i]:
            j = x[i]
            lowest = float(LARGE)
            for j2, c in enumerate(cost[i]):
                if j2 != j and c - v[j2] < lowest:
                    lowest = c - v[j2]
            v[j] -= lowest
    return free_rows, x, y, v


def _augmenting_row_reduction(
    cost: List[List[float]], n: int, n_free_rows: int, free_rows: List[int],
    x: List[int], y: List[int], v: List[float],
) -> int:
    """Augmenting row reduction; rewrites ``free_rows`` and returns how many remain."""
    current = 0
    new_free_rows = 0
    rr_cnt = 0
    while current < n_free_rows:
        rr_cnt += 1
        free_i = free_rows[current]
        current += 1
        row = cost[free_i]
        j1 = 0
        v1 = row[0] - v[0]
        j2 = -1
        v2 = float(LARGE)
        for j in range(1, n):
            c = row[j] - v[j]
            if c < v2:
                if c >= v1:
                    v2 = c
                    j2 = j
                else:
                    v2 = v1
                    v1 = c
                    j2 = j1
                    j1 = j
        i0 = y[j1]
        v1_new = v[j1] - (v2 - v1)
        v1_lowers = v1_new < v[j1]
        if rr_cnt < current * n:
            if v1_lowers:
                v[j1] = v1_new
            elif i0 >= 0 and j2 >= 0:
                j1 = j2
                i0 = y[j2]
            if i0 >= 0:
                if v1_lowers:
                    current -= 1
                    free_rows[current] = i0
                else:
                    free_rows[new_free_rows] = i0
                    new_free_rows += 1
        elif i0 >= 0:
            free_rows[new_free_rows] = i0
            new_free_rows += 1
        x[free_i] = j1
        y[j1] = free_i
    return new_free_rows


def _find_minimum_columns(n: int, lo: int, d: List[float], cols: List[int]) -> int:
    """Move the columns with minimal ``d`` to the front of the scan list."""
    hi = lo + 1
    mind = d[cols[lo]]
    for k in range(hi, n):
        j = cols[k]
        if d[j] <= mind:
            if d[j] < mind:
                hi = lo
                mind = d[j]
            cols[k] = cols[hi]
            cols[hi] = j
            hi += 1
    return hi


def _scan(
    cost: List[List[float]], n: int, lo: int, hi: int, d: List[float],
    cols: List[int], pred: List[int], y: List[int], v: List[float],
) -> Tuple[int, int, int]:
    """Relax the pending columns; returns a free column (or -1) and the new bounds."""
    start_lo, start_hi = lo, hi
    while lo != hi:
        j = cols[lo]
        lo += 1
        i = y[j]
        mind = d[j]
        row = cost[i]
        h = row[j] - v[j] - mind
        for k in range(hi, n):
            j = cols[k]
            cred_ij = row[j] - v[j] - h
            if cred_ij < d[j]:
                d[j] = cred_ij
                pred[j] = i
                if cred_ij == mind:
                    if y[j] < 0:
                        return j, start_lo, start_hi
                    cols[k] = cols[hi]
                    cols[hi] = j
                    hi += 1
    return -1, lo, hi


def _find_path(
    cost: List[List[float]], n: int, start_i: int, y: List[int], v: List[float], pred: List[int]
) -> int:
    """Shortest augmenting path from ``start_i``; returns the closest free column."""
    lo = hi = 0
    final_j = -1
    n_ready = 0
    cols = list(range(n))
    pred[:] = [start_i] * n
    d = [c - vj for c, vj in zip(cost[start_i], v)]

    while final_j == -1:
        if lo == hi:
            n_ready = lo
            hi = _find_minimum_columns(n, lo, d, cols)
            for j in cols[lo:hi]:
                if y[j] < 0:
                    final_j = j
        if final_j == -1:
            final_j, lo, hi = _scan(cost, n, lo, hi, d, cols, pred, y, v)

    mind = d[cols[lo]]
    for j in cols[:n_ready]:
        v[j] += d[j] - mind
    return final_j


def _augment(
    cost: List[List[float]], n: int, free_rows: Sequence[int],
    x: List[int], y: List[int], v: List[float],
) -> None:
    """Augment the assignment along shortest paths from every free row."""
    pred = [0] * n
    for free_i in free_rows:
        i = -1
        j = _find_path(cost, n, free_i, y, v, pred)
        while i != free_i:
            i = pred[j]
            y[j] = i
            j, x[i] = x[i], j


def solve_dense(cost) -> Tuple[List[int], List[int]]:
    """Solve a square assignment problem.

    Returns ``(x, y)`` where ``x[i]`` is the column assigned to row ``i`` and
    ``y[j]`` the row assigned to column ``j``.
    """
    matrix = np.asarray(cost, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError("cost matrix must be square")
    n = matrix.shape[0]
    if n == 0:
        raise ValueError("cost matrix must not be empty")
    rows = matrix.tolist()

    free_rows, x, y, v = _column_reduction(rows, n)
    n_free = len(free_rows)
    free_rows.extend([0] * (n - n_free))
    for _ in range(2):
        if n_free <= 0:
            break
        n_free = _augmenting_row_reduction(rows, n, n_free, free_rows, x, y, v)
    if n_free > 0:
        _augment(rows, n, free_rows[:n_free], x, y, v)
    return x, y


def lapjv(
    cost,
    extend_cost: bool = False,
    cost_limit: float = math.inf,
    return_cost: bool = True,
) -> Assignment:
    """Solve a possibly rectangular assignment problem.

    With ``extend_cost`` the matrix is padded to a square one so rows and
    columns may stay unmatched; a finite ``cost_limit`` makes any pairing
    costlier than the limit lose to leaving both sides unmatched.
    """
    matrix = np.asarray(cost, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] == 0 or matrix.shape[1] == 0:
        raise ValueError("cost matrix must be a non-empty 2-D matrix")
    n_rows, n_cols = matrix.shape
    if n_rows != n_cols and not extend_cost:
        raise ValueError("a non-square cost matrix needs extend_cost=True")

    limited = cost_limit < math.inf
    if extend_cost or limited:
        n = n_rows + n_cols
        fill = cost_limit / 2.0 if limited else max(float(matrix.max()), -1.0) + 1
        work = np.full((n, n), fill)
        work[n_rows:, n_cols:] = 0.0
        work[:n_rows, :n_cols] = matrix
    else:
        n = n_rows
        work = matrix

    x, y = solve_dense(work)

    if n != n_rows:
        rowsol = [col if col < n_cols else -1 for col in x[:n_rows]]
        colsol = [row if row < n_rows else -1 for row in y[:n_cols]]
    else:
        rowsol, colsol = x, y

    total = 0.0
    if return_cost:
        total = float(sum(work[i, col] for i, col in enumerate(rowsol) if col != -1))
    return Assignment(total, rowsol, colsol)