"""
Recovery and projection of secondary solutions onto the spline basis.

The secondary solution of an integrand (fluxes, stresses, ...) is only
available pointwise. The methods here compute control point values of a
spline field on a patch basis from such point values:

    GREVILLE     sample at the Greville points and interpolate
    SCR          superconvergent patch recovery: a local least-squares
                 polynomial fit around each Greville point, followed by
                 interpolation
    GLOBAL_L2    continuous L2 projection (full Gauss rule and Jacobian)
    DISCRETE_L2  discrete least-squares projection at p points per
                 direction with unit weights

All methods return a new spline on the projection basis whose
coefficients are the field values, or None if the projection failed.
A single singular local system makes the whole projection fail.
"""

import logging
import numpy as np
from enum import Enum
from scipy import sparse
from typing import Callable, Optional, Sequence, Tuple

from .integrals import ElementMatrices, SystemAssembly
from .integrand import Integrand
from ..quadrature.gauss import GaussQuadrature
from ..sim.linalg import solve_sparse, solve_least_squares

logger = logging.getLogger(__name__)


class ProjectionMethod(Enum):
    GREVILLE = "greville"
    SCR = "scr"
    GLOBAL_L2 = "global-l2"
    DISCRETE_L2 = "discrete-l2"


def regular_interpolation(spline, params: np.ndarray, values: np.ndarray):
    """
    Spline on the basis of `spline` interpolating values at params.

    Parameters:
        spline: SplineGeometry or LRSpline providing the basis
        params: Sample points, shape (n_basis, n_dim_parametric)
        values: Field values, shape (n_basis, n_components)

    Returns:
        New spline with the interpolating coefficients, or None
    """
    if spline.rational:
        logger.error("Interpolation onto a rational basis is not supported")
        return None

    params = np.asarray(params, dtype=np.float64).reshape(len(params), -1)
    values = np.asarray(values, dtype=np.float64)
    if values.ndim == 1:
        values = values.reshape(-1, 1)

    n = spline.n_control_points
    if len(params) != n or len(values) != n:
        logger.error("Interpolation needs %d sample points, got %d points and %d values",
                     n, len(params), len(values))
        return None

    rows, cols, vals = [], [], []
    for k, u in enumerate(params):
        bd = spline.compute_basis(u, 0)
        rows.extend([k] * len(bd.nodes))
        cols.extend(bd.nodes)
        vals.extend(bd.values)
    A = sparse.csr_matrix((vals, (rows, cols)), shape=(n, n))

    coefs = solve_sparse(A, values)
    if coefs is None:
        logger.error("Singular interpolation matrix")
        return None
    return spline.copy_with_coefs(coefs.reshape(n, -1))


def monomials(x: np.ndarray, n_terms: Sequence[int]) -> np.ndarray:
    """
    Tensor-product monomials at points x, first direction fastest.

    Parameters:
        x: Points, shape (n_points, n_dim)
        n_terms: Number of powers (0 .. n-1) per direction

    Returns:
        Array of shape (n_points, prod(n_terms)); column 0 is the constant
    """
    P = np.ones((len(x), 1))
    for d, n in enumerate(n_terms):
        powers = x[:, d:d + 1] ** np.arange(n)[None, :]
        P = (powers[:, :, None] * P[:, None, :]).reshape(len(x), -1)
    return P


def sc_recovery(patch, integrand: Integrand, basis: int = 1):
    """
    Superconvergent patch recovery.

    For every basis function, a polynomial with order-m+1 terms per
    direction (m = integrand.derivative_order()) is fitted by least squares
    through the secondary solution at order-m Gauss points per direction in
    every element of the extended support of the function. The value of
    the polynomial at the Greville point of the function is its recovered
    value. The fit uses physical coordinates relative to the Greville
    point (parametric coordinates for manifolds), scaled by the extent of
    the sample points.
    """
    b = patch.bases[basis - 1]
    m = integrand.derivative_order()
    if any(o - m < 1 for o in b.orders):
        logger.error("Basis orders %s are too low for derivative order %d", b.orders, m)
        return None

    quad = GaussQuadrature(tuple(o - m for o in b.orders))
    n_terms = [o - m + 1 for o in b.orders]
    physical = patch.nsd == patch.n_dim
    gpts = b.greville_points()
    offset = patch.node_offset(basis)

    cache = {}

    def samples(iel):
        if iel not in cache:
            coords, vals = [], []
            for u in quad.map_to_element(patch.element_bounds(iel)):
                fe, X = patch.compute_fe(iel, u, m)
                s = integrand.eval_sol(fe, X, patch.mnpc[iel])
                if s is None:
                    return None
                coords.append(X if physical else u)
                vals.append(np.atleast_1d(s))
            cache[iel] = (np.array(coords), np.array(vals))
        return cache[iel]

    recovered = []
    for i, g in enumerate(gpts):
        G = patch.geometry.eval_point(g) if physical else g
        coords, vals = [], []
        for iel in patch.extended_support(i + offset):
            data = samples(iel)
            if data is None:
                logger.error("Secondary solution failed in element %d", iel)
                return None
            coords.append(data[0])
            vals.append(data[1])
        x = np.vstack(coords) - G
        h = np.ptp(x, axis=0)
        h[h == 0.0] = 1.0

        P = monomials(x / h, n_terms)
        c = solve_least_squares(P, np.vstack(vals))
        if c is None:
            logger.error("Singular local fit for basis function %d", i)
            return None
        recovered.append(c[0])

    return regular_interpolation(b, gpts, np.array(recovered))


def l2_projection(patch, integrand: Integrand, continuous: bool = True, basis: int = 1):
    """
    Least-squares projection of the secondary solution.

    Assembles A = sum N N^T dJw and B = sum N s^T dJw over all elements and
    solves A X = B for all components at once. The continuous variant uses
    the full Gauss rule with dJw = |detJ| dA w; the discrete variant uses
    p points per direction with dJw = 1.
    """
    b = patch.bases[basis - 1]
    n = b.n_control_points
    m = integrand.derivative_order()
    if continuous:
        quad = patch.gauss_rule()
    else:
        quad = GaussQuadrature(tuple(max(o - 1, 1) for o in b.orders))

    rows, cols, vals = [], [], []
    B = None
    for iel in range(patch.n_elements):
        bounds = patch.element_bounds(iel)
        dA = float(np.prod([hi - lo for lo, hi in bounds]))
        if dA <= 0.0:
            logger.error("Element %d has non-positive parametric measure %g", iel, dA)
            return None

        nodes = patch.element_nodes(iel, basis)
        for u, w in zip(quad.map_to_element(bounds), quad.weights):
            fe, X = patch.compute_fe(iel, u, m)
            if continuous:
                dJw = abs(fe.detJxW) * dA * w
                if dJw == 0.0:
                    continue
            else:
                dJw = 1.0

            s = integrand.eval_sol(fe, X, patch.mnpc[iel])
            if s is None:
                logger.error("Secondary solution failed in element %d", iel)
                return None
            s = np.atleast_1d(s)
            if B is None:
                B = np.zeros((n, len(s)))

            N = fe.N2 if basis == 2 else fe.N
            rows.append(np.repeat(nodes, len(nodes)))
            cols.append(np.tile(nodes, len(nodes)))
            vals.append(np.outer(N, N).ravel() * dJw)
            np.add.at(B, nodes, np.outer(N, s) * dJw)

    if B is None:
        logger.error("No sampling points in the projection")
        return None

    A = sparse.csr_matrix((np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
                          shape=(n, n))
    coefs = solve_sparse(A, B)
    if coefs is None:
        logger.error("Singular projection matrix")
        return None
    return b.copy_with_coefs(coefs)


def project_solution(patch, integrand: Integrand,
                     method: ProjectionMethod = ProjectionMethod.GREVILLE,
                     basis: int = 1):
    """
    Project the secondary solution of an integrand onto a patch basis.

    Parameters:
        patch: Patch with generated topology; the integrand must hold the
               patch-level primary solution
        integrand: Provides eval_sol
        method: Projection method
        basis: Basis to project onto (1 or 2)

    Returns:
        Spline whose coefficients are the projected field values, or None
    """
    if not patch.has_topology:
        logger.error("Patch topology is not generated or out of date")
        return None

    integrand.init_result_points(integrand.time)

    if method is ProjectionMethod.GREVILLE:
        gpts = patch.greville_points(basis)
        values = []
        for u in gpts:
            s = patch.eval_secondary(integrand, u)
            if s is None:
                return None
            values.append(np.atleast_1d(s))
        return regular_interpolation(patch.bases[basis - 1], gpts, np.array(values))
    if method is ProjectionMethod.SCR:
        return sc_recovery(patch, integrand, basis)
    if method is ProjectionMethod.GLOBAL_L2:
        return l2_projection(patch, integrand, True, basis)
    if method is ProjectionMethod.DISCRETE_L2:
        return l2_projection(patch, integrand, False, basis)

    logger.error("Unknown projection method %s", method)
    return None


class _FaceProjection(Integrand):
    """Boundary mass matrix and load of a function on one basis."""

    def __init__(self, func: Callable, n_comp: int, nsd: int, basis: int):
        super().__init__(nsd, 1)
        self.func = func
        self.n_comp = n_comp
        self.basis = basis

    def fields_per_basis(self) -> Tuple[int, ...]:
        return (1, 1)

    def get_local_integral(self, nen, iel, neumann=False):
        return ElementMatrices(1, self.n_comp, nen)

    def get_local_integral_mixed(self, nen1, nen2, iel, neumann=False):
        return ElementMatrices(1, self.n_comp, nen1 + nen2)

    def init_element(self, mnpc, elm, X0=None, n_pt=0):
        return True

    def init_element_mixed(self, mnpc1, mnpc2, n1, elm):
        return True

    def evaluate(self, elm, fe, X):
        return True

    def evaluate_bou(self, elm, fe, X, normal):
        N = fe.N2 if self.basis == 2 else fe.N
        off = len(fe.N) if self.basis == 2 else 0
        k = slice(off, off + len(N))
        f = np.atleast_1d(self.func(X, self.time))
        elm.A[0][k, k] += np.outer(N, N) * fe.detJxW
        for c in range(self.n_comp):
            elm.b[c][k] += N * f[c] * fe.detJxW
        return True


def face_l2_projection(patch, face: int, func: Callable, time: float = 0.0,
                       n_comp: int = 1, basis: int = 1):
    """
    L2 projection of a function onto the nodes of one patch face.

    Used for non-homogeneous Dirichlet conditions.

    Parameters:
        face: -(d+1) for the start, +(d+1) for the end of direction d
        func: Function f(X, t) returning n_comp values
        n_comp: Number of function components

    Returns:
        (nodes, values): patch node numbers of the face nodes and their
        projected values, shape (n_nodes, n_comp); None on failure
    """
    if not patch.has_topology:
        logger.error("Patch topology is not generated or out of date")
        return None

    # One equation per global node
    assembly = SystemAssembly(np.arange(int(patch.mlgn.max()) + 2), n_comp)
    assembly.initialize()
    integrand = _FaceProjection(func, n_comp, patch.nsd, basis)
    if not patch.integrate_boundary(integrand, face, assembly, time):
        return None
    assembly.finalize()

    nodes = patch.boundary_nodes([face], basis) + patch.node_offset(basis)
    eqs = patch.mlgn[nodes]
    A = assembly.K[eqs][:, eqs]
    B = np.column_stack([r[eqs] for r in assembly.rhs])
    values = solve_sparse(A, B)
    if values is None:
        logger.error("Singular boundary projection on face %d", face)
        return None
    return nodes, values.reshape(len(nodes), n_comp)
