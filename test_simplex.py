# test_simplex.py

import pytest
import numpy as np
from scipy.optimize import linprog
import sys
import os

# Add the directory containing simplex.py to the Python path
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from simplex import (
    OPTIMAL,
    UNBOUNDED,
    INFEASIBLE,
    NonConvergenceError,
    NullTrace,
    NumericalInstabilityError,
    Snapshot,
    Tableau,
    TableauCorruptionError,
    TraceRecorder,
    build_tableau,
    extract_solution,
    find_pivot_column,
    find_pivot_row,
    optimize,
    pivot,
    restore_feasibility,
)
from utils import create_example_toys, create_example_integral


def toys_tableau():
    return build_tableau(*create_example_toys())


def solve_with_scipy(supply, consumption, profit):
    """LP relaxation via scipy.linprog, returned as (x, max value)."""
    result = linprog(-np.asarray(profit, dtype=float), A_ub=consumption, b_ub=supply,
                     bounds=[(0, None)] * len(profit), method='highs')
    assert result.success, f"SciPy linprog failed: {result.message}"
    return result.x, -result.fun


# --- Tableau construction ---

def test_build_tableau_layout():
    """Rows are resources plus the objective, columns are RHS plus products."""
    tableau = toys_tableau()

    assert tableau.m == 4
    assert tableau.n == 3
    assert tableau.basic_vars == ["x3", "x4", "x5", "F"]
    assert tableau.nonbasic_vars == ["RHS", "x1", "x2"]
    assert tableau.decision_vars == ["x1", "x2"]
    assert np.allclose(tableau.matrix, [
        [150, 5, 2],
        [130, 2, 3],
        [120, 1, 7],
        [0, -10, -20],
    ])
    assert tableau.objective_value == 0.0


def test_build_tableau_input_validation():
    with pytest.raises(ValueError, match="at least one resource"):
        build_tableau([], [], [1, 2])

    with pytest.raises(ValueError, match="at least one product"):
        build_tableau([1], [[]], [])

    with pytest.raises(ValueError, match="does not match"):
        build_tableau([1, 2], [[1, 2, 3]], [1, 2])

    with pytest.raises(ValueError, match="non-finite"):
        build_tableau([1], [[1, 2]], [1, np.inf])


def test_tableau_owns_its_buffer():
    matrix = np.array([[4.0, 1.0], [0.0, -1.0]])
    tableau = Tableau(matrix, ["x2", "F"], ["RHS", "x1"])
    matrix[0, 0] = 99.0
    assert tableau.matrix[0, 0] == 4.0

    clone = tableau.copy()
    pivot(clone, 0, 1)
    assert tableau.basic_vars == ["x2", "F"]
    assert tableau.matrix[0, 0] == 4.0


def test_tableau_integrity_errors():
    with pytest.raises(TableauCorruptionError, match="basic labels"):
        Tableau([[1.0, 1.0], [0.0, -1.0]], ["F"], ["RHS", "x1"])

    with pytest.raises(TableauCorruptionError, match="nonbasic labels"):
        Tableau([[1.0, 1.0], [0.0, -1.0]], ["x2", "F"], ["RHS"])

    with pytest.raises(TableauCorruptionError, match="last row"):
        Tableau([[1.0, 1.0], [0.0, -1.0]], ["F", "x2"], ["RHS", "x1"])

    with pytest.raises(TableauCorruptionError, match="non-finite"):
        Tableau([[np.nan, 1.0], [0.0, -1.0]], ["x2", "F"], ["RHS", "x1"])


# --- Pivot engine ---

def test_pivot_rectangle_rule():
    tableau = toys_tableau()
    pivot(tableau, 0, 1)

    assert np.allclose(tableau.matrix, [
        [30, 0.2, 0.4],
        [70, -0.4, 2.2],
        [90, -0.2, 6.6],
        [300, 2, -16],
    ])
    assert tableau.basic_vars == ["x1", "x4", "x5", "F"]
    assert tableau.nonbasic_vars == ["RHS", "x3", "x2"]


def test_pivot_twice_restores_tableau():
    """Pivoting on the same position again undoes the exchange."""
    tableau = toys_tableau()
    original = tableau.matrix.copy()

    for r, s in [(0, 1), (2, 2), (1, 1)]:
        pivot(tableau, r, s)
        pivot(tableau, r, s)
        assert np.allclose(tableau.matrix, original)
        assert tableau.basic_vars == ["x3", "x4", "x5", "F"]
        assert tableau.nonbasic_vars == ["RHS", "x1", "x2"]


def test_pivot_zero_element_raises():
    tableau = build_tableau(*create_example_integral())
    # x2 does not appear in the first constraint
    with pytest.raises(NumericalInstabilityError):
        pivot(tableau, 0, 2)


def test_pivot_records_snapshot():
    tableau = toys_tableau()
    trace = TraceRecorder()
    pivot(tableau, 0, 1, trace)

    assert len(trace) == 1
    snapshot = trace.snapshots[0]
    assert isinstance(snapshot, Snapshot)
    assert "(0, 1)" in snapshot.title
    assert "x1 enters" in snapshot.title
    assert snapshot.basic_vars == ("x1", "x4", "x5", "F")

    # Snapshots are detached from later mutations
    pivot(tableau, 2, 2)
    assert snapshot.matrix[0][0] == pytest.approx(30.0)
    assert snapshot.basic_vars[2] == "x5"
    assert "x1" in snapshot.to_table()


def test_null_trace_records_nothing():
    tableau = toys_tableau()
    trace = NullTrace()
    pivot(tableau, 0, 1, trace)
    assert len(trace.snapshots) == 0


# --- Feasibility restorer ---

def test_restore_feasibility_repairs_negative_rhs():
    tableau = Tableau([
        [-2.0, -1.0, 1.0],
        [4.0, 1.0, 1.0],
        [0.0, -1.0, -1.0],
    ], ["x3", "x4", "F"], ["RHS", "x1", "x2"])
    trace = TraceRecorder()

    assert restore_feasibility(tableau, observer=trace) is True
    assert np.all(tableau.rhs >= -1e-6)
    assert tableau.basic_vars == ["x1", "x4", "F"]
    assert np.allclose(tableau.matrix[:, 0], [2.0, 2.0, 2.0])
    assert len(trace) == 1


def test_restore_feasibility_without_negative_coefficient():
    """A negative row with no negative coefficient cannot be repaired."""
    matrix = [
        [-1.0, 1.0, 2.0],
        [0.0, -1.0, -1.0],
    ]
    tableau = Tableau(matrix, ["x3", "F"], ["RHS", "x1", "x2"])

    assert restore_feasibility(tableau) is False
    assert np.allclose(tableau.matrix, matrix)


def test_restore_feasibility_noop_on_feasible_tableau():
    tableau = toys_tableau()
    trace = TraceRecorder()
    assert restore_feasibility(tableau, observer=trace) is True
    assert len(trace) == 0


# --- Pivot selection ---

def test_find_pivot_column_rules():
    tableau = toys_tableau()
    assert find_pivot_column(tableau, "bland") == 1
    assert find_pivot_column(tableau, "dantzig") == 2

    with pytest.raises(ValueError, match="entering_rule"):
        find_pivot_column(tableau, "steepest")


def test_find_pivot_column_none_at_optimum():
    tableau = Tableau([[1.0, 1.0], [5.0, 2.0]], ["x2", "F"], ["RHS", "x1"])
    assert find_pivot_column(tableau) is None


def test_ratio_test_selects_minimum():
    tableau = toys_tableau()
    for col in (1, 2):
        row = find_pivot_row(tableau, col)
        ratios = [tableau.matrix[i, 0] / tableau.matrix[i, col]
                  for i in range(tableau.m - 1) if tableau.matrix[i, col] > 1e-6]
        assert tableau.matrix[row, 0] / tableau.matrix[row, col] == min(ratios)

    assert find_pivot_row(tableau, 1) == 0
    assert find_pivot_row(tableau, 2) == 2


def test_ratio_test_first_row_wins_ties():
    tableau = Tableau([
        [4.0, 2.0],
        [6.0, 3.0],
        [0.0, -1.0],
    ], ["x2", "x3", "F"], ["RHS", "x1"])
    assert find_pivot_row(tableau, 1) == 0


def test_ratio_test_ignores_non_positive_entries():
    tableau = Tableau([
        [5.0, -1.0],
        [3.0, 0.0],
        [0.0, -1.0],
    ], ["x2", "x3", "F"], ["RHS", "x1"])
    assert find_pivot_row(tableau, 1) is None


# --- Optimality search ---

@pytest.mark.parametrize("rule", ["bland", "dantzig"])
def test_optimize_lp_matches_scipy(rule):
    supply, consumption, profit = create_example_toys()
    tableau = build_tableau(supply, consumption, profit)

    assert optimize(tableau, entering_rule=rule) == OPTIMAL

    scipy_x, scipy_z = solve_with_scipy(supply, consumption, profit)
    solution = tableau.solution()
    assert tableau.objective_value == pytest.approx(scipy_z)
    assert tableau.objective_value == pytest.approx(5700 / 11)
    assert np.allclose([solution["x1"], solution["x2"]], scipy_x, atol=1e-6)


def test_optimize_feasibility_invariant():
    tableau = toys_tableau()
    assert optimize(tableau) == OPTIMAL
    assert np.all(tableau.rhs >= -1e-6)
    assert np.all(tableau.matrix[-1, 1:] >= -1e-6)


def test_optimize_trace_counts_pivots():
    tableau = build_tableau(*create_example_integral())
    trace = TraceRecorder()

    assert optimize(tableau, observer=trace) == OPTIMAL
    assert len(trace) == 3
    assert tableau.objective_value == pytest.approx(36.0)
    assert tableau.solution() == pytest.approx({"x1": 2.0, "x2": 6.0})


def test_optimize_unbounded():
    """No constraint limits x1 when its only coefficient is negative."""
    tableau = build_tableau([5], [[-1, -2]], [1, 1])
    assert optimize(tableau) == UNBOUNDED


def test_optimize_infeasible():
    """x3 = -1 - x1 - 2 x2 can never be made non-negative."""
    tableau = Tableau([
        [-1.0, 1.0, 2.0],
        [0.0, 1.0, 1.0],
    ], ["x3", "F"], ["RHS", "x1", "x2"])
    assert optimize(tableau) == INFEASIBLE


def test_optimize_pivot_cap():
    tableau = toys_tableau()
    with pytest.raises(NonConvergenceError):
        optimize(tableau, max_pivots=1)


def test_optimize_rejects_unknown_rule():
    with pytest.raises(ValueError):
        optimize(toys_tableau(), entering_rule="largest")


# --- Solution extractor ---

def test_extract_solution_defaults_nonbasic_to_zero():
    tableau = toys_tableau()
    pivot(tableau, 0, 1)

    values = extract_solution(tableau, ["x1", "x2", "x4"])
    assert values == {"x1": pytest.approx(30.0), "x2": 0.0, "x4": pytest.approx(70.0)}
    assert tableau.value_of("missing") == 0.0
