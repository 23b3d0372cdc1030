"""
Tensor-product spline curves, surfaces and volumes.

A SplineGeometry holds one knot vector per parametric direction, the
control point coefficients and optional NURBS weights:

    X(u) = sum_i R_i(u) P_i,   R_i = N_i w_i / sum_j N_j w_j

Control points are ordered with the first parametric direction running
fastest, so the flat index of tensor index (i, j, k) is
i + n_u*(j + n_v*k). Elements are ordered the same way.

The coefficients need not be coordinates: a field spline produced by the
recovery algorithms is a SplineGeometry whose "control points" are the
field values at the control points.

Refinement (knot insertion, order elevation) is exact and is carried out
in homogeneous coordinates for rational splines.
"""

import logging
import numpy as np
from typing import List, Optional, Sequence, Tuple

from ..discretization.knot_vector import (
    KnotVector, insert_knots, elevate_knot_vector, smooth_elevated_knot_vector,
)
from .bspline import (
    BasisDerivs, eval_basis_ders_1d, combine_tensor_derivs, rationalize,
    collocation_matrix,
)

logger = logging.getLogger(__name__)


class SplineGeometry:
    """
    Tensor-product B-spline or NURBS object of 1 to 3 parametric directions.

    Attributes:
        knot_vectors: One KnotVector per parametric direction
        control_points: Coefficients, shape (n_control_points, n_dim_physical)
        weights: NURBS weights, shape (n_control_points,), or None
    """

    def __init__(self, knot_vectors: Sequence[KnotVector],
                 control_points: np.ndarray,
                 weights: Optional[np.ndarray] = None):
        self.knot_vectors = tuple(knot_vectors)
        if not 1 <= len(self.knot_vectors) <= 3:
            raise ValueError(f"Unsupported parametric dimension {len(self.knot_vectors)}")

        cps = np.asarray(control_points, dtype=np.float64)
        if cps.ndim == 1:
            cps = cps.reshape(-1, 1)
        if cps.shape[0] != self.n_control_points:
            raise ValueError(
                f"Number of control points ({cps.shape[0]}) "
                f"must match number of basis functions ({self.n_control_points})"
            )
        self.control_points = cps

        if weights is None:
            self.weights = None
        else:
            w = np.asarray(weights, dtype=np.float64).ravel()
            if len(w) != self.n_control_points:
                raise ValueError("Weights array length must match number of control points")
            if np.any(w <= 0.0):
                raise ValueError("All weights must be positive")
            self.weights = w

    # --- Sizes ---------------------------------------------------------------

    @property
    def n_dim_parametric(self) -> int:
        return len(self.knot_vectors)

    @property
    def n_dim_physical(self) -> int:
        return self.control_points.shape[1]

    @property
    def rational(self) -> bool:
        return self.weights is not None

    @property
    def degrees(self) -> Tuple[int, ...]:
        return tuple(kv.degree for kv in self.knot_vectors)

    @property
    def orders(self) -> Tuple[int, ...]:
        return tuple(kv.order for kv in self.knot_vectors)

    @property
    def n_basis_per_dir(self) -> Tuple[int, ...]:
        return tuple(kv.n_basis for kv in self.knot_vectors)

    @property
    def n_control_points(self) -> int:
        return int(np.prod(self.n_basis_per_dir))

    @property
    def n_elements_per_dir(self) -> Tuple[int, ...]:
        return tuple(kv.n_elements for kv in self.knot_vectors)

    @property
    def n_elements(self) -> int:
        return int(np.prod(self.n_elements_per_dir))

    @property
    def n_basis_per_element(self) -> int:
        return int(np.prod(self.orders))

    @property
    def domain(self) -> Tuple[Tuple[float, float], ...]:
        return tuple(kv.domain for kv in self.knot_vectors)

    # --- Index helpers -------------------------------------------------------

    def tensor_index(self, flat: int, sizes: Optional[Sequence[int]] = None) -> Tuple[int, ...]:
        """Tensor index of a flat control point (or element) index."""
        sizes = self.n_basis_per_dir if sizes is None else sizes
        idx = []
        for n in sizes:
            idx.append(flat % n)
            flat //= n
        return tuple(idx)

    def flat_index(self, idx: Sequence[int], sizes: Optional[Sequence[int]] = None) -> int:
        """Flat index of a tensor index, first direction fastest."""
        sizes = self.n_basis_per_dir if sizes is None else sizes
        flat = 0
        stride = 1
        for i, n in zip(idx, sizes):
            flat += i * stride
            stride *= n
        return flat

    def element_bounds(self, iel: int) -> Tuple[Tuple[float, float], ...]:
        """Parametric box of an element."""
        eidx = self.tensor_index(iel, self.n_elements_per_dir)
        return tuple(kv.elements[e] for kv, e in zip(self.knot_vectors, eidx))

    def element_spans(self, iel: int) -> Tuple[int, ...]:
        eidx = self.tensor_index(iel, self.n_elements_per_dir)
        return tuple(kv.element_to_span(e) for kv, e in zip(self.knot_vectors, eidx))

    def element_nodes(self, iel: int) -> np.ndarray:
        """Control point indices of the functions active on an element."""
        return self._nodes_from_spans(self.element_spans(iel))

    def _nodes_from_spans(self, spans: Sequence[int]) -> np.ndarray:
        ranges = [np.arange(s - kv.degree, s + 1) for s, kv in zip(spans, self.knot_vectors)]
        nodes = ranges[-1]
        for d in range(self.n_dim_parametric - 2, -1, -1):
            nodes = (nodes[:, None] * self.n_basis_per_dir[d] + ranges[d][None, :]).ravel()
        return nodes

    def find_element(self, u: Sequence[float]) -> int:
        """Element containing the parameter point u."""
        eidx = [kv.find_element(x) for kv, x in zip(self.knot_vectors, u)]
        return self.flat_index(eidx, self.n_elements_per_dir)

    # --- Evaluation ----------------------------------------------------------

    def compute_basis(self, u: Sequence[float], n_ders: int = 1,
                      iel: Optional[int] = None) -> BasisDerivs:
        """
        Basis functions and parametric derivatives at a point.

        Parameters:
            u: Parameter point (one value per direction)
            n_ders: 0 for values only, 1 or 2 for derivatives
            iel: Element whose polynomial pieces should be used

        Returns:
            BasisDerivs with node indices into the control points
        """
        u = np.atleast_1d(np.asarray(u, dtype=np.float64))
        if iel is None:
            spans = [kv.find_span(x) for kv, x in zip(self.knot_vectors, u)]
        else:
            spans = self.element_spans(iel)

        ders_1d = [eval_basis_ders_1d(kv, x, n_ders, s)
                   for kv, x, s in zip(self.knot_vectors, u, spans)]
        values, first, second = combine_tensor_derivs(ders_1d, n_ders)
        nodes = self._nodes_from_spans(spans)

        if self.rational:
            values, first, second = rationalize(values, first, second, self.weights[nodes])

        return BasisDerivs(nodes, values, first, second)

    def eval_point(self, u: Sequence[float], iel: Optional[int] = None) -> np.ndarray:
        """Evaluate the spline (coordinates or field values) at u."""
        bd = self.compute_basis(u, 0, iel)
        return bd.values @ self.control_points[bd.nodes]

    # --- Greville points -----------------------------------------------------

    def greville_parameters(self, direction: int) -> np.ndarray:
        """Greville abscissae of one parametric direction."""
        return self.knot_vectors[direction].greville_abscissae()

    def greville_points(self) -> np.ndarray:
        """
        All Greville points, one per control point.

        Returns:
            Array of shape (n_control_points, n_dim_parametric)
        """
        params = [self.greville_parameters(d) for d in range(self.n_dim_parametric)]
        grids = np.meshgrid(*reversed(params), indexing="ij")
        return np.column_stack([g.ravel() for g in reversed(grids)])

    # --- Refinement ----------------------------------------------------------

    def _homogeneous(self) -> np.ndarray:
        if not self.rational:
            return self.control_points.copy()
        return np.hstack([self.control_points * self.weights[:, None],
                          self.weights[:, None]])

    def _set_homogeneous(self, coefs: np.ndarray):
        if self.rational:
            self.weights = coefs[:, -1].copy()
            self.control_points = coefs[:, :-1] / self.weights[:, None]
        else:
            self.control_points = coefs

    def _apply_along(self, direction: int, A: np.ndarray, coefs: np.ndarray) -> np.ndarray:
        """Apply a univariate coefficient map to one direction of the net."""
        sizes = list(self.n_basis_per_dir)
        ncomp = coefs.shape[1]
        net = coefs.reshape(list(reversed(sizes)) + [ncomp])
        axis = self.n_dim_parametric - 1 - direction
        net = np.moveaxis(np.tensordot(A, net, axes=([1], [axis])), 0, axis)
        return net.reshape(-1, ncomp)

    def insert_knots(self, direction: int, knots: Sequence[float]) -> None:
        """Insert knots in one direction, keeping the geometry unchanged."""
        if not knots:
            return
        coefs = self._homogeneous()
        new_kv, A = insert_knots(self.knot_vectors[direction], knots)
        coefs = self._apply_along(direction, A, coefs)
        kvs = list(self.knot_vectors)
        kvs[direction] = new_kv
        self.knot_vectors = tuple(kvs)
        self._set_homogeneous(coefs)

    def _change_basis(self, direction: int, new_kv: KnotVector) -> None:
        """
        Represent the spline on a new univariate basis by collocation at the
        Greville points of the new basis. This is exact when the old space
        is contained in the new one.
        """
        old_kv = self.knot_vectors[direction]
        gpar = new_kv.greville_abscissae()
        B_new = collocation_matrix(new_kv, gpar)
        B_old = collocation_matrix(old_kv, gpar)
        A = np.linalg.solve(B_new, B_old)

        coefs = self._apply_along(direction, A, self._homogeneous())
        kvs = list(self.knot_vectors)
        kvs[direction] = new_kv
        self.knot_vectors = tuple(kvs)
        self._set_homogeneous(coefs)

    def raise_order(self, *r: int) -> None:
        """
        Raise the polynomial order r[d] times in each direction, keeping the
        continuity at the existing knots.
        """
        if len(r) != self.n_dim_parametric:
            raise ValueError(f"Need {self.n_dim_parametric} order increments, got {len(r)}")
        for d, rd in enumerate(r):
            if rd > 0:
                self._change_basis(d, elevate_knot_vector(self.knot_vectors[d], rd))

    def raise_order_smooth(self, *r: int) -> None:
        """
        Raise the order keeping the interior knot multiplicities, which gives
        C^(p-1) continuity at simple knots for the new degree p. The result
        is the interpolant of the old spline at the new Greville points.
        """
        if len(r) != self.n_dim_parametric:
            raise ValueError(f"Need {self.n_dim_parametric} order increments, got {len(r)}")
        for d, rd in enumerate(r):
            if rd > 0:
                self._change_basis(d, smooth_elevated_knot_vector(self.knot_vectors[d], rd))

    # --- Copies --------------------------------------------------------------

    def copy(self) -> 'SplineGeometry':
        return SplineGeometry([kv.copy() for kv in self.knot_vectors],
                              self.control_points.copy(),
                              None if self.weights is None else self.weights.copy())

    def copy_with_coefs(self, coefs: np.ndarray) -> 'SplineGeometry':
        """Spline on the same basis (including weights) with new coefficients."""
        return SplineGeometry([kv.copy() for kv in self.knot_vectors],
                              np.asarray(coefs, dtype=np.float64),
                              None if self.weights is None else self.weights.copy())

    def boundary_elements(self, direction: int, side: int) -> List[int]:
        """
        Elements adjacent to one boundary.

        Parameters:
            direction: Parametric direction (0-based)
            side: 0 for the start of the domain, 1 for the end
        """
        sizes = self.n_elements_per_dir
        target = 0 if side == 0 else sizes[direction] - 1
        return [iel for iel in range(self.n_elements)
                if self.tensor_index(iel, sizes)[direction] == target]
