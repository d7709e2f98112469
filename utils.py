# utils.py
import numpy as np
from fractions import Fraction
from tabulate import tabulate


def limit_fraction(value, fraction_digits=3):
    """Limit the number of digits in a fraction's numerator and denominator."""
    if value is None or abs(float(value)) < 1e-10:
        return Fraction(0)

    try:
        frac = Fraction(value) if not isinstance(value, Fraction) else value
    except (TypeError, ValueError):
        return Fraction(0)

    max_value = 10 ** fraction_digits - 1
    n, d = frac.numerator, frac.denominator

    if abs(n) > max_value or abs(d) > max_value:
        return Fraction(float(frac)).limit_denominator(max_value)
    return frac


def convert_to_fraction(value, fraction_digits=3, force_float=False):
    """
    Convert a decimal value to a fraction string or formatted float.

    Args:
        value: The numerical value to convert.
        fraction_digits: Max digits for numerator/denominator or float precision.
        force_float: If True, always return formatted float.

    Returns:
        Formatted string representation.
    """
    try:
        float_value = float(value)
        if force_float:
            return f"{float_value:.{fraction_digits}f}"

        frac = limit_fraction(Fraction(float_value), fraction_digits)
        # Only show the fraction if it is exact enough to stand for the value
        if abs(float(frac) - float_value) > 1e-9:
            return f"{float_value:.{fraction_digits}f}"
        return str(frac)

    except (ValueError, TypeError, OverflowError):
        return str(value)  # Return original if conversion fails


def format_tableau(matrix, basic_vars, nonbasic_vars, use_fractions=False, fraction_digits=3):
    """Render a tableau as a plain-text grid: header row of column labels, one line per row label."""
    rows = []
    for label, values in zip(basic_vars, matrix):
        if use_fractions:
            cells = [convert_to_fraction(v, fraction_digits) for v in values]
        else:
            cells = [f"{float(v):.4f}" for v in values]
        rows.append([label] + cells)

    headers = [""] + list(nonbasic_vars)
    return tabulate(rows, headers=headers, colalign=["left"] + ["right"] * len(nonbasic_vars), disable_numparse=True)


def create_example_toys():
    """
    Toy workshop: three materials, two toys.

        Maximize:  F = 10x1 + 20x2
        Subject to:
            5x1 + 2x2 <= 150
            2x1 + 3x2 <= 130
             x1 + 7x2 <= 120
        Integer optimum: F = 500
    """
    supply = np.array([150, 130, 120])
    consumption = np.array([
        [5, 2],
        [2, 3],
        [1, 7],
    ])
    profit = np.array([10, 20])
    return supply, consumption, profit


def create_example_integral():
    """Create a problem whose LP optimum is already integral"""
    # Maximize: F = 3x1 + 5x2
    # Subject to:
    #   x1 <= 4
    #   2x2 <= 12  (x2 <= 6)
    #   3x1 + 2x2 <= 18
    # Optimal: x1=2, x2=6, F = 36
    supply = np.array([4, 12, 18])
    consumption = np.array([
        [1, 0],
        [0, 2],
        [3, 2]
    ])
    profit = np.array([3, 5])
    return supply, consumption, profit


def validate_inputs(supply, consumption, profit):
    """Validate raw user input before a tableau is built from it."""
    try:
        supply = np.asarray(supply, dtype=float)
        consumption = np.asarray(consumption, dtype=float)
        profit = np.asarray(profit, dtype=float)
    except (ValueError, TypeError) as e:
        return False, f"Inputs must be numeric: {e}"

    # Type checks
    if supply.ndim != 1 or len(supply) == 0: return False, "Resource supplies must be a non-empty 1D array."
    if profit.ndim != 1 or len(profit) == 0: return False, "Profits must be a non-empty 1D array."
    if consumption.ndim != 2: return False, "Consumption must be a 2D array."

    # Dimension consistency
    m, k = consumption.shape
    if m != len(supply): return False, f"Consumption has {m} rows but {len(supply)} resource supplies were given."
    if k != len(profit): return False, f"Consumption has {k} columns but {len(profit)} profits were given."

    # Value checks
    for name, array in [("Resource supplies", supply), ("Consumption", consumption), ("Profits", profit)]:
        if not np.all(np.isfinite(array)):
            return False, f"{name} contain non-finite values (NaN or Inf)."
        if np.any(array < 0):
            return False, f"{name} must be non-negative."

    return True, "Inputs are valid."
