import warnings
from collections import namedtuple

import numpy as np

from utils import format_tableau

EPS = 1e-6
RHS_LABEL = "RHS"
OBJECTIVE_LABEL = "F"

# Optimality search statuses
OPTIMAL = "optimal"
UNBOUNDED = "unbounded"
INFEASIBLE = "infeasible"

ENTERING_RULES = ("bland", "dantzig")


# Custom Exception Classes for better error handling
class SimplexError(Exception):
    """Base class for simplex-related errors."""
    pass

class InfeasibleProblemError(SimplexError):
    """Raised when no integer solution can be reached."""
    pass

class UnboundedProblemError(SimplexError):
    """Raised when the linear programming problem is unbounded."""
    pass

class NonConvergenceError(SimplexError):
    """Raised when an iteration cap is exceeded before a terminal state."""
    pass

class NumericalInstabilityError(SimplexError):
    """Raised when a pivot element is too close to zero to divide by."""
    pass

class TableauCorruptionError(SimplexError):
    """Raised when the tableau appears to be in an invalid state."""
    pass

class SolveCancelledError(SimplexError):
    """Raised when a solve is cancelled through its cancellation token."""
    pass


class Snapshot(namedtuple("Snapshot", ["title", "matrix", "basic_vars", "nonbasic_vars"])):
    """Immutable record of a tableau at one algorithm step."""
    __slots__ = ()

    def to_table(self, use_fractions=False, fraction_digits=3):
        return format_tableau(self.matrix, self.basic_vars, self.nonbasic_vars,
                              use_fractions=use_fractions, fraction_digits=fraction_digits)

    def __str__(self):
        return f"{self.title}\n{self.to_table()}"


class TraceRecorder:
    """Collects a Snapshot for every step reported to it."""

    def __init__(self, verbose=False, use_fractions=False, fraction_digits=3):
        self.snapshots = []
        self.verbose = verbose
        self.use_fractions = use_fractions
        self.fraction_digits = fraction_digits

    def record(self, title, tableau):
        snapshot = tableau.snapshot(title)
        self.snapshots.append(snapshot)
        if self.verbose:
            print(f"\nStep {len(self.snapshots)}: {title}")
            print(snapshot.to_table(self.use_fractions, self.fraction_digits))

    def __len__(self):
        return len(self.snapshots)


class NullTrace:
    """Trace sink that drops everything."""
    snapshots = ()

    def record(self, title, tableau):
        pass


class Tableau:
    def __init__(self, matrix, basic_vars, nonbasic_vars, decision_vars=None):
        """
        Simplex table in exchange form.

        Row i reads  basic_vars[i] = matrix[i, 0] - sum_j matrix[i, j] * nonbasic_vars[j]
        and the last row is the objective row labelled OBJECTIVE_LABEL.
        Column 0 holds the right-hand side of every row.

        :param matrix: 2D array-like, copied into an owned float buffer
        :param basic_vars: one label per row
        :param nonbasic_vars: one label per column, column 0 is the RHS pseudo-variable
        :param decision_vars: names reported in solutions, defaults to nonbasic_vars[1:]
        """
        self.matrix = np.array(matrix, dtype=float)
        self.basic_vars = list(basic_vars)
        self.nonbasic_vars = list(nonbasic_vars)
        if decision_vars is None:
            decision_vars = self.nonbasic_vars[1:]
        self.decision_vars = list(decision_vars)
        self.check_integrity()

    @property
    def m(self):
        return self.matrix.shape[0]

    @property
    def n(self):
        return self.matrix.shape[1]

    @property
    def objective_value(self):
        return float(self.matrix[-1, 0])

    @property
    def rhs(self):
        """Right-hand sides of the constraint rows (objective row excluded)."""
        return self.matrix[:-1, 0].copy()

    def check_integrity(self):
        if self.matrix.ndim != 2 or self.matrix.shape[0] < 1 or self.matrix.shape[1] < 1:
            raise TableauCorruptionError(f"Tableau matrix must be a non-empty 2D array, got shape {self.matrix.shape}")
        problems = []
        if len(self.basic_vars) != self.m:
            problems.append(f"{len(self.basic_vars)} basic labels for {self.m} rows")
        if len(self.nonbasic_vars) != self.n:
            problems.append(f"{len(self.nonbasic_vars)} nonbasic labels for {self.n} columns")
        if self.basic_vars and self.basic_vars[-1] != OBJECTIVE_LABEL:
            problems.append(f"last row must be labelled {OBJECTIVE_LABEL!r}, got {self.basic_vars[-1]!r}")
        if problems:
            raise TableauCorruptionError("; ".join(problems))

        if not np.all(np.isfinite(self.matrix)):
            rows, cols = np.where(~np.isfinite(self.matrix))
            raise TableauCorruptionError(
                f"Tableau corruption: non-finite value {self.matrix[rows[0], cols[0]]} at ({rows[0]}, {cols[0]}). "
                f"Total {len(rows)} corrupted entries."
            )

    def row_of(self, label):
        """Row index whose basic label is `label`, or None."""
        try:
            return self.basic_vars.index(label)
        except ValueError:
            return None

    def value_of(self, label):
        row = self.row_of(label)
        return 0.0 if row is None else float(self.matrix[row, 0])

    def insert_row(self, index, row, label):
        row = np.asarray(row, dtype=float)
        if row.shape != (self.n,):
            raise TableauCorruptionError(f"Row of shape {row.shape} does not fit a tableau with {self.n} columns")
        self.matrix = np.insert(self.matrix, index, row, axis=0)
        self.basic_vars.insert(index, label)

    def solution(self, names=None):
        return extract_solution(self, self.decision_vars if names is None else names)

    def snapshot(self, title):
        return Snapshot(
            title,
            tuple(tuple(float(v) for v in row) for row in self.matrix),
            tuple(self.basic_vars),
            tuple(self.nonbasic_vars),
        )

    def copy(self):
        return Tableau(self.matrix.copy(), self.basic_vars, self.nonbasic_vars, self.decision_vars)

    def __repr__(self):
        return f"Tableau(m={self.m}, n={self.n}, basic={self.basic_vars}, nonbasic={self.nonbasic_vars})"

    def __str__(self):
        return format_tableau(self.matrix, self.basic_vars, self.nonbasic_vars)


def build_tableau(resource_supply, consumption, profit):
    """
    Build the initial tableau for

        Maximize   profit^T x
        Subject to consumption x <= resource_supply, x >= 0

    :param resource_supply: sequence of m supplies
    :param consumption: m x k matrix, consumption[i][j] = units of resource i used by product j
    :param profit: sequence of k per-unit profits
    """
    b = np.array(resource_supply, dtype=float)
    c = np.array(profit, dtype=float)
    try:
        A = np.array(consumption, dtype=float)
    except ValueError as e:
        raise ValueError(f"Consumption matrix must be rectangular: {e}")

    if b.ndim != 1 or len(b) == 0:
        raise ValueError("Problem must have at least one resource constraint.")
    if c.ndim != 1 or len(c) == 0:
        raise ValueError("Problem must have at least one product.")

    m, k = len(b), len(c)
    if A.shape != (m, k):
        raise ValueError(f"Consumption matrix shape {A.shape} does not match expected ({m}, {k})")
    for name, array in [("resource_supply", b), ("consumption", A), ("profit", c)]:
        if not np.all(np.isfinite(array)):
            raise ValueError(f"Array {name} contains non-finite values (NaN or Inf)")

    matrix = np.zeros((m + 1, k + 1), dtype=float)
    matrix[:m, 0] = b
    matrix[:m, 1:] = A
    matrix[m, 1:] = -c

    decision_vars = [f"x{j + 1}" for j in range(k)]
    slack_vars = [f"x{k + i + 1}" for i in range(m)]
    return Tableau(matrix, slack_vars + [OBJECTIVE_LABEL], [RHS_LABEL] + decision_vars, decision_vars)


def pivot(tableau, r, s, observer=None):
    """Jordan exchange on element (r, s): the column variable enters row r."""
    old = tableau.matrix
    pivot_element = old[r, s]

    if abs(pivot_element) < 1e-12:
        raise NumericalInstabilityError(
            f"Pivot element {pivot_element:.2e} at ({r}, {s}) is too small."
        )
    if abs(pivot_element) < 1e-9:
        warnings.warn(f"Small pivot element {pivot_element:.2e} may cause numerical instability.", UserWarning)

    # Rectangle rule on the whole table, then overwrite the pivot row and column
    new = (old * pivot_element - np.outer(old[:, s], old[r, :])) / pivot_element
    new[r, :] = old[r, :] / pivot_element
    new[:, s] = -old[:, s] / pivot_element
    new[r, s] = 1.0 / pivot_element
    tableau.matrix = new

    entering = tableau.nonbasic_vars[s]
    leaving = tableau.basic_vars[r]
    tableau.basic_vars[r], tableau.nonbasic_vars[s] = entering, leaving

    if observer is not None:
        observer.record(f"Pivot at ({r}, {s}): {entering} enters, {leaving} leaves", tableau)


def find_infeasible_row(tableau, eps=EPS):
    for i in range(tableau.m - 1):
        if tableau.matrix[i, 0] < -eps:
            return i
    return None


def restore_feasibility(tableau, eps=EPS, observer=None, max_pivots=1000):
    """
    Pivot away negative right-hand sides.

    Takes the first row with a negative RHS and pivots on its first negative
    coefficient until no negative RHS is left. Returns True when the tableau
    is feasible and False when a negative row has no negative coefficient.
    """
    for _ in range(max_pivots):
        row = find_infeasible_row(tableau, eps)
        if row is None:
            return True

        col = None
        for j in range(1, tableau.n):
            if tableau.matrix[row, j] < -eps:
                col = j
                break
        if col is None:
            return False

        pivot(tableau, row, col, observer)

    if find_infeasible_row(tableau, eps) is None:
        return True
    raise NonConvergenceError(f"Negative right-hand sides remain after {max_pivots} pivots.")


def find_pivot_column(tableau, entering_rule="bland", eps=EPS):
    """Entering column from the objective row, None when no coefficient improves."""
    objective = tableau.matrix[-1, 1:]
    candidates = np.where(objective < -eps)[0]
    if len(candidates) == 0:
        return None

    if entering_rule == "bland":
        return int(candidates[0]) + 1
    if entering_rule == "dantzig":
        # argmin returns the first of equal minima
        return int(np.argmin(objective)) + 1
    raise ValueError(f"entering_rule must be one of {ENTERING_RULES}, got {entering_rule!r}")


def find_pivot_row(tableau, pivot_col, eps=EPS):
    """Minimum ratio test over the constraint rows; first minimum wins ties."""
    pivot_row = None
    min_ratio = float("inf")
    for i in range(tableau.m - 1):
        coeff = tableau.matrix[i, pivot_col]
        if coeff > eps:
            ratio = tableau.matrix[i, 0] / coeff
            if ratio < min_ratio:
                min_ratio = ratio
                pivot_row = i
    return pivot_row


def optimize(tableau, eps=EPS, entering_rule="bland", observer=None, max_pivots=1000):
    """
    Primal simplex on the tableau, restoring feasibility before every step.

    Returns OPTIMAL, UNBOUNDED, or INFEASIBLE when negative right-hand sides
    remain and the objective row offers nothing to pivot on.
    """
    if entering_rule not in ENTERING_RULES:
        raise ValueError(f"entering_rule must be one of {ENTERING_RULES}, got {entering_rule!r}")

    pivots = 0
    while True:
        feasible = restore_feasibility(tableau, eps, observer, max_pivots)

        pivot_col = find_pivot_column(tableau, entering_rule, eps)
        if pivot_col is None:
            return OPTIMAL if feasible else INFEASIBLE

        pivot_row = find_pivot_row(tableau, pivot_col, eps)
        if pivot_row is None:
            return UNBOUNDED

        if pivots >= max_pivots:
            raise NonConvergenceError(f"No optimum after {max_pivots} pivots.")
        pivot(tableau, pivot_row, pivot_col, observer)
        pivots += 1


def extract_solution(tableau, names):
    """Value of each named variable: its row's RHS when basic, else 0."""
    return {name: tableau.value_of(name) for name in names}
