import threading

import numpy as np
from scipy.optimize import milp, LinearConstraint, Bounds

from simplex import (
    EPS,
    OPTIMAL,
    UNBOUNDED,
    INFEASIBLE,
    OBJECTIVE_LABEL,
    InfeasibleProblemError,
    NonConvergenceError,
    SolveCancelledError,
    TableauCorruptionError,
    TraceRecorder,
    UnboundedProblemError,
    build_tableau,
    extract_solution,
    optimize,
)

NON_CONVERGENT = "non_convergent"

MAX_ITERATIONS = 20

OUTCOME_MESSAGES = {
    OPTIMAL: "Optimal integer solution found.",
    UNBOUNDED: "The objective function is unbounded.",
    INFEASIBLE: "No integer solution found: the constraints cannot be satisfied or no further cut applies.",
    NON_CONVERGENT: "Too many iterations, no solution found.",
}


class CancellationToken:
    """Thread-safe flag a solve checks once per iteration."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self):
        return self._event.is_set()


class GomoryResult:
    """Outcome of a solve: tag, decision values, objective and the step trace."""

    def __init__(self, outcome, values, trace, objective_value=None, cuts_added=0, message=None, tableau=None):
        self.outcome = outcome
        self.values = values
        self.trace = tuple(trace)
        self.objective_value = objective_value
        self.cuts_added = cuts_added
        self.message = message if message is not None else OUTCOME_MESSAGES.get(outcome, "")
        self.tableau = tableau

    @property
    def success(self):
        return self.outcome == OPTIMAL

    def raise_for_outcome(self):
        """Raise the matching SimplexError unless the outcome is optimal."""
        if self.outcome == UNBOUNDED:
            raise UnboundedProblemError(self.message)
        if self.outcome == INFEASIBLE:
            raise InfeasibleProblemError(self.message)
        if self.outcome == NON_CONVERGENT:
            raise NonConvergenceError(self.message)
        return self

    def __repr__(self):
        return (f"GomoryResult(outcome={self.outcome!r}, values={self.values}, "
                f"objective_value={self.objective_value}, cuts_added={self.cuts_added}, steps={len(self.trace)})")


def find_fractional_row(tableau, eps=EPS):
    """
    Constraint row whose RHS has the largest fractional part.

    Returns (row index, fractional part), or None when every RHS is integral
    within eps. The first row wins ties.
    """
    best_row = None
    max_fraction = 0.0
    for i in range(tableau.m - 1):
        value = tableau.matrix[i, 0]
        frac = value - np.floor(value)
        if eps < frac < 1 - eps and frac > max_fraction:
            max_fraction = frac
            best_row = i
    if best_row is None:
        return None
    return best_row, float(max_fraction)


def cut_name(tableau):
    index = tableau.m + tableau.n
    taken = set(tableau.basic_vars) | set(tableau.nonbasic_vars)
    while f"cut{index}" in taken:
        index += 1
    return f"cut{index}"


def add_gomory_cut(tableau, label, eps=EPS, observer=None):
    """
    Append the fractional cut generated by the row of basic variable `label`.

    The cut row holds the negated fractional parts of that row and is
    inserted just above the objective row. Returns False when every entry
    is within eps of zero, i.e. the cut would not constrain anything.
    """
    row = tableau.row_of(label)
    if row is None or row == tableau.m - 1:
        raise TableauCorruptionError(f"No constraint row has basic variable {label!r}")

    source = tableau.matrix[row]
    cut_row = -(source - np.floor(source))
    if np.all(np.abs(cut_row) < eps):
        return False

    name = cut_name(tableau)
    tableau.insert_row(tableau.row_of(OBJECTIVE_LABEL), cut_row, name)

    if observer is not None:
        observer.record(f"Gomory cut {name} from {label}", tableau)
    return True


class GomorySolver:
    def __init__(self, tableau, max_iterations=MAX_ITERATIONS, eps=EPS, entering_rule="bland",
                 observer=None, cancel_token=None, verbose=False, use_fractions=False, fraction_digits=3):
        """
        Pure cutting-plane integer solver over a tableau built by build_tableau.

        :param tableau: Tableau, mutated in place
        :param max_iterations: int, number of cuts allowed before giving up
        :param eps: float, integrality and sign tolerance
        :param entering_rule: "bland" (leftmost negative) or "dantzig" (most negative)
        :param observer: trace sink with record(title, tableau); defaults to a TraceRecorder
        :param cancel_token: CancellationToken checked before every iteration
        :param verbose: bool, print every recorded step (default recorder only)
        """
        if max_iterations < 0:
            raise ValueError("max_iterations must be non-negative.")
        if eps <= 0:
            raise ValueError("eps must be positive.")

        self.tableau = tableau
        self.max_iterations = max_iterations
        self.eps = eps
        self.entering_rule = entering_rule
        self.observer = observer if observer is not None else TraceRecorder(
            verbose=verbose, use_fractions=use_fractions, fraction_digits=fraction_digits)
        self.cancel_token = cancel_token
        self.iteration = 0

    def _check_cancelled(self):
        if self.cancel_token is not None and self.cancel_token.cancelled:
            raise SolveCancelledError(f"Solve cancelled after {self.iteration} cuts.")

    def _result(self, outcome):
        values = extract_solution(self.tableau, self.tableau.decision_vars)
        objective_value = self.tableau.objective_value if outcome == OPTIMAL else None
        return GomoryResult(outcome, values, getattr(self.observer, "snapshots", ()),
                            objective_value=objective_value, cuts_added=self.iteration, tableau=self.tableau)

    def _optimize(self):
        try:
            return optimize(self.tableau, self.eps, self.entering_rule, self.observer)
        except NonConvergenceError:
            return NON_CONVERGENT

    def solve_relaxation(self):
        """LP optimum without integrality."""
        self._check_cancelled()
        return self._result(self._optimize())

    def solve(self):
        while True:
            self._check_cancelled()

            status = self._optimize()
            if status != OPTIMAL:
                return self._result(status)

            fractional = find_fractional_row(self.tableau, self.eps)
            if fractional is None:
                return self._result(OPTIMAL)

            row, _ = fractional
            if not add_gomory_cut(self.tableau, self.tableau.basic_vars[row], self.eps, self.observer):
                return self._result(INFEASIBLE)

            self.iteration += 1
            if self.iteration > self.max_iterations:
                return self._result(NON_CONVERGENT)


def solve_integer(tableau, **options):
    """Solve the integer program held in `tableau`; see GomorySolver for options."""
    return GomorySolver(tableau, **options).solve()


def solve_lp(tableau, **options):
    """Solve the LP relaxation held in `tableau` without cuts."""
    return GomorySolver(tableau, **options).solve_relaxation()


def solve_integer_lp(resource_supply, consumption, profit, **options):
    """Build, solve, and raise a SimplexError unless an integer optimum is found."""
    tableau = build_tableau(resource_supply, consumption, profit)
    return solve_integer(tableau, **options).raise_for_outcome()


def submit_solve(executor, tableau, **options):
    """Run solve_integer on a private copy of `tableau` in `executor`; returns the Future."""
    return executor.submit(solve_integer, tableau.copy(), **options)


# --- SciPy Verification Function ---
def verify_with_scipy(resource_supply, consumption, profit):
    """
    Solves the same integer program with scipy.optimize.milp for verification.

    Returns:
        tuple: (max_profit, x) or (None, None) if failed.
    """
    c = -np.asarray(profit, dtype=float)  # Negative for maximization
    A = np.asarray(consumption, dtype=float)
    b_u = np.asarray(resource_supply, dtype=float)
    b_l = np.full_like(b_u, -np.inf)

    constraints = LinearConstraint(A, b_l, b_u)
    integrality = np.ones(len(c), dtype=int)  # All variables are integer
    bounds = Bounds(0, np.inf)

    result = milp(c=c, constraints=constraints, integrality=integrality, bounds=bounds)
    if result.success:
        return float(-result.fun), np.round(result.x)
    print(f"SciPy MILP failed. Status: {result.status}, Message: {result.message}")
    return None, None


# Example Usage
if __name__ == "__main__":
    """
    Example problem:

        Maximize:    F = 10x1 + 20x2

        Subject to:
            5x1 + 2x2 <= 150
            2x1 + 3x2 <= 130
             x1 + 7x2 <= 120
            x1, x2 >= 0 and integer
    """
    from utils import create_example_toys

    supply, consumption, profit = create_example_toys()
    result = solve_integer(build_tableau(supply, consumption, profit), verbose=True, use_fractions=True)
    print(f"\n{result.message}")
    print(f"Solution: {result.values}")
    print(f"Optimal value: {result.objective_value}")
    print(f"SciPy check: {verify_with_scipy(supply, consumption, profit)[0]}")
