"""
B-spline basis function evaluation.

The i-th B-spline of degree p is defined recursively (Cox-de Boor):

    N_{i,0}(xi) = 1 if xi_i <= xi < xi_{i+1}, else 0

    N_{i,p}(xi) = (xi - xi_i)/(xi_{i+p} - xi_i) * N_{i,p-1}(xi)
                + (xi_{i+p+1} - xi)/(xi_{i+p+1} - xi_{i+1}) * N_{i+1,p-1}(xi)

Multivariate tensor-product functions are products of univariate ones.
Local ordering of the p+1 (or (p+1)^d) non-zero functions on an element
runs fastest in the first parametric direction, the same ordering as the
control points.

The result of a basis evaluation at one point is returned as a
BasisDerivs record: node indices, values, and first and second parametric
derivatives, all keyed by the same local index.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from ..discretization.knot_vector import KnotVector


@dataclass
class BasisDerivs:
    """
    Basis functions and parametric derivatives at one point.

    Attributes:
        nodes: Indices of the non-zero functions, shape (nen,)
        values: Function values, shape (nen,)
        first: First derivatives, shape (nen, npar), or None
        second: Second derivatives, shape (nen, npar, npar), or None
    """
    nodes: np.ndarray
    values: np.ndarray
    first: Optional[np.ndarray] = None
    second: Optional[np.ndarray] = None

    @property
    def n_functions(self) -> int:
        return len(self.values)


def eval_basis_1d(kv: KnotVector, xi: float,
                  span: Optional[int] = None) -> np.ndarray:
    """
    Evaluate the p+1 non-zero B-spline functions at xi.

    Parameters:
        kv: Knot vector
        xi: Parameter value
        span: Optional pre-computed span index

    Returns:
        Array of shape (p+1,) containing N_{span-p,p}(xi) to N_{span,p}(xi)
    """
    p = kv.degree
    knots = kv.knots

    if span is None:
        span = kv.find_span(xi)

    N = np.zeros(p + 1)
    N[0] = 1.0
    left = np.zeros(p + 1)
    right = np.zeros(p + 1)

    for j in range(1, p + 1):
        left[j] = xi - knots[span + 1 - j]
        right[j] = knots[span + j] - xi

        saved = 0.0
        for r in range(j):
            temp = N[r] / (right[r + 1] + left[j - r])
            N[r] = saved + right[r + 1] * temp
            saved = left[j - r] * temp
        N[j] = saved

    return N


def eval_basis_ders_1d(kv: KnotVector, xi: float, n_ders: int,
                       span: Optional[int] = None) -> np.ndarray:
    """
    Evaluate B-spline functions and derivatives at xi.

    Piegl & Tiller, "The NURBS Book", Algorithm A2.3. Derivatives of
    order higher than p are zero and are returned as zero rows.

    Returns:
        Array of shape (n_ders+1, p+1) where result[k, j] is the k-th
        derivative of N_{span-p+j, p}
    """
    p = kv.degree
    knots = kv.knots

    if span is None:
        span = kv.find_span(xi)

    ders = np.zeros((n_ders + 1, p + 1))
    n_ders = min(n_ders, p)

    # ndu holds basis functions (lower triangle) and knot differences (upper)
    ndu = np.zeros((p + 1, p + 1))
    ndu[0, 0] = 1.0
    left = np.zeros(p + 1)
    right = np.zeros(p + 1)

    for j in range(1, p + 1):
        left[j] = xi - knots[span + 1 - j]
        right[j] = knots[span + j] - xi

        saved = 0.0
        for r in range(j):
            ndu[j, r] = right[r + 1] + left[j - r]
            temp = ndu[r, j - 1] / ndu[j, r]
            ndu[r, j] = saved + right[r + 1] * temp
            saved = left[j - r] * temp
        ndu[j, j] = saved

    ders[0, :] = ndu[:, p]

    a = np.zeros((2, p + 1))
    for r in range(p + 1):
        s1, s2 = 0, 1
        a[0, 0] = 1.0

        for k in range(1, n_ders + 1):
            d = 0.0
            rk = r - k
            pk = p - k

            if r >= k:
                a[s2, 0] = a[s1, 0] / ndu[pk + 1, rk]
                d = a[s2, 0] * ndu[rk, pk]

            j1 = 1 if rk >= -1 else -rk
            j2 = k - 1 if r - 1 <= pk else p - r

            for j in range(j1, j2 + 1):
                a[s2, j] = (a[s1, j] - a[s1, j - 1]) / ndu[pk + 1, rk + j]
                d += a[s2, j] * ndu[rk + j, pk]

            if r <= pk:
                a[s2, k] = -a[s1, k - 1] / ndu[pk + 1, r]
                d += a[s2, k] * ndu[r, pk]

            ders[k, r] = d
            s1, s2 = s2, s1

    r = p
    for k in range(1, n_ders + 1):
        ders[k, :] *= r
        r *= (p - k)

    return ders


def tensor_product(factors: Sequence[np.ndarray]) -> np.ndarray:
    """
    Flattened tensor product of univariate arrays, first factor fastest.

    tensor_product([Nu, Nv])[j*len(Nu) + i] == Nu[i] * Nv[j]
    """
    result = np.asarray(factors[-1])
    for f in reversed(factors[:-1]):
        result = np.kron(result, f)
    return result


def combine_tensor_derivs(ders_1d: Sequence[np.ndarray], n_ders: int):
    """
    Combine univariate derivative tables into multivariate ones.

    Parameters:
        ders_1d: One array of shape (n_ders+1, p_d+1) per direction
        n_ders: Highest derivative order wanted (0, 1 or 2)

    Returns:
        (values, first, second) with first/second None if not requested
    """
    npar = len(ders_1d)
    values = tensor_product([d[0] for d in ders_1d])
    first = second = None

    if n_ders >= 1:
        first = np.zeros((len(values), npar))
        for a in range(npar):
            first[:, a] = tensor_product(
                [d[1] if k == a else d[0] for k, d in enumerate(ders_1d)])

    if n_ders >= 2:
        second = np.zeros((len(values), npar, npar))
        for a in range(npar):
            for b in range(a, npar):
                counts = [0] * npar
                counts[a] += 1
                counts[b] += 1
                second[:, a, b] = tensor_product(
                    [d[counts[k]] for k, d in enumerate(ders_1d)])
                second[:, b, a] = second[:, a, b]

    return values, first, second


def rationalize(values: np.ndarray, first: Optional[np.ndarray],
                second: Optional[np.ndarray], weights: np.ndarray):
    """
    Apply the NURBS quotient rule to polynomial basis derivatives.

    R_i = N_i w_i / W with W = sum_j N_j w_j.

    Returns:
        (R, dR, d2R) with the same shapes as the input
    """
    Nw = values * weights
    W = np.sum(Nw)
    R = Nw / W
    dR = d2R = None

    if first is not None:
        dNw = first * weights[:, None]
        dW = np.sum(dNw, axis=0)
        dR = (dNw - np.outer(R, dW)) / W

        if second is not None:
            d2Nw = second * weights[:, None, None]
            d2W = np.sum(d2Nw, axis=0)
            d2R = (d2Nw
                   - np.einsum('na,b->nab', dR, dW)
                   - np.einsum('nb,a->nab', dR, dW)
                   - np.einsum('n,ab->nab', R, d2W)) / W

    return R, dR, d2R


def eval_local_bspline_1d(local_knots: Sequence[float], xi: float, n_ders: int,
                          interval: Optional[Tuple[float, float]] = None) -> np.ndarray:
    """
    Evaluate one B-spline given by its local knot vector of length p+2.

    The polynomial piece is the one on the knot span containing the given
    interval (for instance an element), so evaluation on the boundary of an
    element uses that element's polynomial.

    Parameters:
        local_knots: The p+2 knots of the function
        xi: Parameter value
        n_ders: Number of derivatives
        interval: Element interval selecting the polynomial piece

    Returns:
        Array of length n_ders+1 with the value and derivatives
    """
    t = np.asarray(local_knots, dtype=np.float64)
    p = len(t) - 2
    result = np.zeros(n_ders + 1)

    mid = xi if interval is None else 0.5 * (interval[0] + interval[1])
    if mid < t[0] or mid > t[-1]:
        return result

    # Pad with p repeated end knots, the function of interest has index p
    padded = np.concatenate([[t[0]] * p, t, [t[-1]] * p])
    kv = KnotVector(padded, p)
    span = kv.find_span(mid)
    ders = eval_basis_ders_1d(kv, xi, n_ders, span)

    j = p - (span - p)
    if 0 <= j <= p:
        result[:] = ders[:, j]
    return result


def collocation_matrix(kv: KnotVector, params: Sequence[float]) -> np.ndarray:
    """
    Dense matrix of all basis functions evaluated at the given parameters.

    Returns:
        Array of shape (len(params), n_basis)
    """
    p = kv.degree
    B = np.zeros((len(params), kv.n_basis))
    for row, xi in enumerate(params):
        span = kv.find_span(xi)
        B[row, span - p:span + 1] = eval_basis_1d(kv, xi, span)
    return B
