"""
Knot vector utilities.

A knot vector is a non-decreasing sequence of real numbers that defines
the parametric domain and basis function support of a univariate B-spline
basis of degree p (order p+1).

Mathematical background:
- Open knot vectors have p+1 repeated knots at each end
- The number of basis functions is n = len(knots) - p - 1
- Elements are the knot spans [xi_i, xi_{i+1}] with xi_i < xi_{i+1}
- A knot of multiplicity k gives C^{p-k} continuity

Refinement operations return the new knot vector together with the
matrix A mapping old coefficients to new ones, P_new = A @ P_old.
"""

import numpy as np
from typing import List, Sequence, Tuple
from dataclasses import dataclass

KNOT_TOL = 1.0e-12


@dataclass
class KnotVector:
    """
    A univariate knot vector.

    Attributes:
        knots: The knot values (non-decreasing sequence)
        degree: Polynomial degree p

    Properties computed:
        n_basis: Number of basis functions
        n_elements: Number of non-zero knot spans
        elements: List of (start, end) parametric intervals
    """
    knots: np.ndarray
    degree: int

    def __post_init__(self):
        self.knots = np.asarray(self.knots, dtype=np.float64)
        self._validate()
        self._compute_elements()

    def _validate(self):
        if self.degree < 0:
            raise ValueError(f"Degree must be non-negative, got {self.degree}")
        if len(self.knots) < 2 * (self.degree + 1):
            raise ValueError(
                f"Knot vector too short for degree {self.degree}. "
                f"Need at least {2 * (self.degree + 1)} knots, got {len(self.knots)}."
            )
        if not np.all(np.diff(self.knots) >= 0):
            raise ValueError("Knot vector must be non-decreasing.")
        if self.knots[self.degree] >= self.knots[self.n_basis]:
            raise ValueError("Knot vector has an empty parametric domain.")

    def _compute_elements(self):
        """Collect the non-empty spans inside the domain and their span indices."""
        p = self.degree
        self._elements = []
        self._spans = []
        for i in range(p, self.n_basis):
            if self.knots[i + 1] > self.knots[i]:
                self._elements.append((float(self.knots[i]), float(self.knots[i + 1])))
                self._spans.append(i)

    @property
    def order(self) -> int:
        """Polynomial order p+1."""
        return self.degree + 1

    @property
    def n_basis(self) -> int:
        """Number of basis functions."""
        return len(self.knots) - self.degree - 1

    @property
    def n_elements(self) -> int:
        """Number of non-zero knot spans (elements)."""
        return len(self._elements)

    @property
    def elements(self) -> List[Tuple[float, float]]:
        """List of element intervals as (start, end) tuples."""
        return list(self._elements)

    @property
    def unique_knots(self) -> np.ndarray:
        """Distinct knot values inside the domain (element breakpoints)."""
        return np.array([self._elements[0][0]] + [e[1] for e in self._elements])

    @property
    def domain(self) -> Tuple[float, float]:
        """Parametric domain (first breakpoint, last breakpoint)."""
        return (float(self.knots[self.degree]), float(self.knots[self.n_basis]))

    def find_span(self, xi: float) -> int:
        """
        Knot span index i such that xi is in [xi_i, xi_{i+1}).

        The last span is closed at the domain end. Values outside the
        domain are clamped to the first or last span.
        """
        n = self.n_basis
        p = self.degree

        if xi >= self.knots[n]:
            return self._spans[-1]
        if xi <= self.knots[p]:
            return self._spans[0]

        return int(np.searchsorted(self.knots, xi, side='right')) - 1

    def find_element(self, xi: float) -> int:
        """
        Index of the element containing xi.

        Interior element boundaries belong to the element on the right,
        the domain end belongs to the last element.
        """
        lo, hi = self.domain
        if xi < lo - KNOT_TOL or xi > hi + KNOT_TOL:
            raise ValueError(f"Parameter {xi} outside domain {self.domain}")
        span = self.find_span(xi)
        return self._spans.index(span)

    def element_to_span(self, element_idx: int) -> int:
        """Knot span index of an element."""
        return self._spans[element_idx]

    def active_basis_indices(self, element_idx: int) -> np.ndarray:
        """The p+1 basis function indices that are non-zero on an element."""
        span = self.element_to_span(element_idx)
        return np.arange(span - self.degree, span + 1)

    def greville_abscissae(self) -> np.ndarray:
        """
        Greville abscissae, one per basis function.

        xi_i = (xi_{i+1} + ... + xi_{i+p}) / p, and the span midpoint for
        degree 0. The result is non-decreasing.
        """
        p = self.degree
        n = self.n_basis
        if p == 0:
            return 0.5 * (self.knots[:n] + self.knots[1:n + 1])

        greville = np.zeros(n)
        for i in range(n):
            greville[i] = np.sum(self.knots[i + 1:i + p + 1]) / p
        return greville

    def copy(self) -> 'KnotVector':
        return KnotVector(self.knots.copy(), self.degree)


def make_open_knot_vector(n_basis: int, degree: int,
                          domain: Tuple[float, float] = (0.0, 1.0)) -> KnotVector:
    """
    Create an open uniform knot vector.

    Parameters:
        n_basis: Number of basis functions desired
        degree: Polynomial degree p
        domain: Parametric domain (start, end)
    """
    p = degree
    n_internal = n_basis - p - 1
    if n_internal < 0:
        raise ValueError(
            f"Cannot create knot vector: n_basis={n_basis} too small for degree={degree}"
        )

    a, b = domain
    internal = np.linspace(a, b, n_internal + 2)[1:-1]
    knots = np.concatenate([[a] * (p + 1), internal, [b] * (p + 1)])
    return KnotVector(knots, degree)


def make_uniform_knot_vector(n_elements: int, degree: int,
                             domain: Tuple[float, float] = (0.0, 1.0)) -> KnotVector:
    """Open knot vector with n_elements equal spans and C^{p-1} continuity."""
    return make_open_knot_vector(n_elements + degree, degree, domain)


def compute_multiplicity(kv: KnotVector, xi: float, tol: float = KNOT_TOL) -> int:
    """Number of times xi appears in the knot vector."""
    return int(np.sum(np.abs(kv.knots - xi) < tol))


def compute_knot_insertion_matrix(kv: KnotVector, xi: float) -> Tuple[KnotVector, np.ndarray]:
    """
    Insert a single knot (Boehm's algorithm).

    Parameters:
        kv: Original knot vector
        xi: Knot value to insert, strictly inside the domain

    Returns:
        (new_knot_vector, A) where A has shape (n_old + 1, n_old)
    """
    lo, hi = kv.domain
    if not lo < xi < hi:
        raise ValueError(f"Cannot insert knot {xi} outside the open domain {kv.domain}")

    p = kv.degree
    knots = kv.knots
    n_old = kv.n_basis
    k = int(np.searchsorted(knots, xi, side='right')) - 1

    new_knots = np.insert(knots, k + 1, xi)

    A = np.zeros((n_old + 1, n_old))
    for i in range(n_old + 1):
        if i <= k - p:
            A[i, i] = 1.0
        elif i >= k + 1:
            A[i, i - 1] = 1.0
        else:
            denom = knots[i + p] - knots[i]
            alpha = (xi - knots[i]) / denom if denom > 0.0 else 0.0
            A[i, i - 1] = 1.0 - alpha
            A[i, i] = alpha

    return KnotVector(new_knots, p), A


def insert_knots(kv: KnotVector, new_knots: Sequence[float]) -> Tuple[KnotVector, np.ndarray]:
    """
    Insert several knots, one at a time.

    Parameters:
        kv: Original knot vector
        new_knots: Knot values to insert (any order, repetitions allowed)

    Returns:
        (refined_knot_vector, A) with A of shape (n_new, n_old)
    """
    current = kv
    A_total = np.eye(kv.n_basis)
    for xi in sorted(new_knots):
        current, A = compute_knot_insertion_matrix(current, xi)
        A_total = A @ A_total
    return current, A_total


def relative_refinement_knots(kv: KnotVector, relative_positions: Sequence[float]) -> List[float]:
    """
    Knots at given relative positions inside every element.

    Parameters:
        kv: Knot vector to refine
        relative_positions: Values in (0, 1)

    Returns:
        Sorted list of new knot values
    """
    knots = []
    for a, b in kv.elements:
        knots.extend(a + r * (b - a) for r in relative_positions)
    return sorted(knots)


def uniform_refinement_knots(kv: KnotVector, n_insert: int) -> List[float]:
    """Knots dividing every element into n_insert+1 equal parts."""
    rel = [(k + 1.0) / (n_insert + 1.0) for k in range(n_insert)]
    return relative_refinement_knots(kv, rel)


def elevate_knot_vector(kv: KnotVector, r: int) -> KnotVector:
    """
    Knot vector of the order-elevated space.

    Every breakpoint gets its multiplicity increased by r, so the
    continuity at existing knots is unchanged.
    """
    if r < 0:
        raise ValueError(f"Cannot lower the degree (r={r})")
    if r == 0:
        return kv.copy()

    lo, hi = kv.domain
    knots = []
    for value in kv.unique_knots:
        mult = compute_multiplicity(kv, value)
        if value == lo or value == hi:
            mult = kv.degree + 1
        knots.extend([value] * (mult + r))
    return KnotVector(np.array(knots), kv.degree + r)


def smooth_elevated_knot_vector(kv: KnotVector, r: int) -> KnotVector:
    """
    Knot vector of degree p+r on the same breakpoints, keeping the
    interior multiplicities (maximum smoothness for simple knots).
    """
    lo, hi = kv.domain
    knots = [lo] * (kv.degree + r + 1)
    for value in kv.unique_knots[1:-1]:
        knots.extend([value] * compute_multiplicity(kv, value))
    knots.extend([hi] * (kv.degree + r + 1))
    return KnotVector(np.array(knots), kv.degree + r)
