"""
LR B-splines (locally refined B-splines).

An LR B-spline is a collection of tensor-product B-spline functions, each
with its own local knot vector in every parametric direction and a scaling
weight gamma, defined on a box-partition of the parametric domain:

    X(u) = sum_i gamma_i B_i(u) c_i

Local refinement inserts meshlines (meshrectangles in 3D). Every function
whose support is completely traversed by a meshline is split in two by
univariate knot insertion; functions that arise twice are merged by
adding their weights and averaging their coefficients accordingly. This
keeps the spline unchanged and the basis a partition of unity.

Only polynomial (non-rational) LR B-splines are supported.

Reference:
    Dokken, Lyche, Pettersen, "Polynomial splines over locally refined
    box-partitions", CAGD 30 (2013).
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .bspline import BasisDerivs, eval_local_bspline_1d
from .spline import SplineGeometry

logger = logging.getLogger(__name__)

TOL = 1.0e-12


@dataclass
class LRFunction:
    """One LR B-spline function: local knots, coefficient and weight."""
    knots: Tuple[Tuple[float, ...], ...]
    coef: np.ndarray
    weight: float = 1.0

    @property
    def lower(self) -> np.ndarray:
        return np.array([t[0] for t in self.knots])

    @property
    def upper(self) -> np.ndarray:
        return np.array([t[-1] for t in self.knots])

    def greville(self) -> np.ndarray:
        g = []
        for t in self.knots:
            p = len(t) - 2
            g.append(0.5 * (t[0] + t[1]) if p == 0 else sum(t[1:p + 1]) / p)
        return np.array(g)


@dataclass
class Meshline:
    """Axis-parallel mesh line (or rectangle) at u[direction] = value."""
    direction: int
    value: float
    lower: np.ndarray
    upper: np.ndarray

    def splits(self, f: LRFunction) -> bool:
        """True if the line traverses the support of f without being a knot of it."""
        t = np.asarray(f.knots[self.direction])
        if not t[0] + TOL < self.value < t[-1] - TOL:
            return False
        if np.any(np.abs(t - self.value) < TOL):
            return False
        for e, te in enumerate(f.knots):
            if e == self.direction:
                continue
            if te[0] < self.lower[e] - TOL or te[-1] > self.upper[e] + TOL:
                return False
        return True

    def crosses(self, lower: np.ndarray, upper: np.ndarray) -> bool:
        """True if the line cuts through the interior of an element box."""
        d = self.direction
        if not lower[d] + TOL < self.value < upper[d] - TOL:
            return False
        for e in range(len(lower)):
            if e == d:
                continue
            if min(upper[e], self.upper[e]) - max(lower[e], self.lower[e]) <= TOL:
                return False
        return True


class LRSpline:
    """
    LR B-spline curve, surface or volume.

    Functions and elements are numbered consecutively; the numbering is
    stable between refinements except that split functions are replaced.
    """

    def __init__(self, functions: List[LRFunction],
                 elements: List[Tuple[np.ndarray, np.ndarray]],
                 meshlines: List[Meshline],
                 domain: Sequence[Tuple[float, float]]):
        self.functions = functions
        self.elements = elements
        self.meshlines = meshlines
        self.domain = tuple((float(a), float(b)) for a, b in domain)
        self._rebuild_topology()

    @classmethod
    def from_spline(cls, spline: SplineGeometry) -> 'LRSpline':
        """Create an LR B-spline identical to a tensor-product spline."""
        if spline.rational:
            raise ValueError("Rational LR B-splines are not supported")

        npar = spline.n_dim_parametric
        functions = []
        for i in range(spline.n_control_points):
            idx = spline.tensor_index(i)
            knots = tuple(
                tuple(float(x) for x in kv.knots[j:j + kv.degree + 2])
                for kv, j in zip(spline.knot_vectors, idx))
            functions.append(LRFunction(knots, spline.control_points[i].copy(), 1.0))

        elements = []
        for iel in range(spline.n_elements):
            bounds = spline.element_bounds(iel)
            elements.append((np.array([b[0] for b in bounds]),
                             np.array([b[1] for b in bounds])))

        domain = spline.domain
        lo = np.array([d[0] for d in domain])
        hi = np.array([d[1] for d in domain])
        meshlines = []
        for d, kv in enumerate(spline.knot_vectors):
            for value in kv.unique_knots[1:-1]:
                meshlines.append(Meshline(d, float(value), lo.copy(), hi.copy()))

        return cls(functions, elements, meshlines, domain)

    # --- Sizes ---------------------------------------------------------------

    @property
    def n_dim_parametric(self) -> int:
        return len(self.domain)

    @property
    def n_dim_physical(self) -> int:
        return len(self.functions[0].coef)

    @property
    def n_basis(self) -> int:
        return len(self.functions)

    @property
    def n_control_points(self) -> int:
        return len(self.functions)

    @property
    def n_elements(self) -> int:
        return len(self.elements)

    @property
    def rational(self) -> bool:
        return False

    @property
    def orders(self) -> Tuple[int, ...]:
        return tuple(len(t) - 1 for t in self.functions[0].knots)

    @property
    def degrees(self) -> Tuple[int, ...]:
        return tuple(o - 1 for o in self.orders)

    @property
    def control_points(self) -> np.ndarray:
        return np.array([f.coef for f in self.functions])

    def set_control_points(self, coefs: np.ndarray) -> None:
        coefs = np.asarray(coefs, dtype=np.float64)
        if coefs.ndim == 1:
            coefs = coefs.reshape(-1, 1)
        if coefs.shape[0] != self.n_basis:
            raise ValueError(
                f"Number of coefficients ({coefs.shape[0]}) must match "
                f"number of basis functions ({self.n_basis})")
        for f, c in zip(self.functions, coefs):
            f.coef = c.copy()

    @property
    def weights(self) -> np.ndarray:
        """Scaling weights gamma of the functions."""
        return np.array([f.weight for f in self.functions])

    # --- Topology ------------------------------------------------------------

    def _rebuild_topology(self):
        f_lo = np.array([f.lower for f in self.functions])
        f_hi = np.array([f.upper for f in self.functions])
        e_lo = np.array([e[0] for e in self.elements])
        e_hi = np.array([e[1] for e in self.elements])

        inside = np.all((f_lo[None, :, :] <= e_lo[:, None, :] + TOL) &
                        (e_hi[:, None, :] <= f_hi[None, :, :] + TOL), axis=2)
        self._element_functions = [np.flatnonzero(row) for row in inside]
        self._function_elements = [np.flatnonzero(col) for col in inside.T]

    def element_bounds(self, iel: int) -> Tuple[Tuple[float, float], ...]:
        lo, hi = self.elements[iel]
        return tuple((float(a), float(b)) for a, b in zip(lo, hi))

    def element_nodes(self, iel: int) -> np.ndarray:
        """Indices of the functions with support on an element."""
        return self._element_functions[iel]

    def support(self, i: int) -> np.ndarray:
        """Elements in the support of function i."""
        return self._function_elements[i]

    def extended_support(self, i: int) -> np.ndarray:
        """
        Union of the supports of all functions overlapping function i,
        which includes the support of i itself.
        """
        elems = set()
        for iel in self._function_elements[i]:
            for j in self._element_functions[iel]:
                elems.update(self._function_elements[j].tolist())
        return np.array(sorted(elems), dtype=int)

    def element_containing(self, u: Sequence[float]) -> int:
        """
        Index of the element containing u, or -1 if u is outside the domain.

        Interior element boundaries belong to the element on the upper side.
        """
        u = np.asarray(u, dtype=np.float64)
        for iel, (lo, hi) in enumerate(self.elements):
            ok = True
            for d in range(len(u)):
                at_end = abs(hi[d] - self.domain[d][1]) <= TOL
                if u[d] < lo[d] - TOL or u[d] > hi[d] + TOL:
                    ok = False
                elif u[d] >= hi[d] - TOL and not at_end:
                    ok = False
                if not ok:
                    break
            if ok:
                return iel
        return -1

    def boundary_elements(self, direction: int, side: int) -> List[int]:
        """Elements adjacent to the start (side 0) or end (side 1) of a direction."""
        target = self.domain[direction][side]
        k = 0 if side == 0 else 1
        return [iel for iel, e in enumerate(self.elements)
                if abs(e[k][direction] - target) <= TOL]

    # --- Evaluation ----------------------------------------------------------

    def compute_basis(self, u: Sequence[float], n_ders: int = 1,
                      iel: Optional[int] = None) -> BasisDerivs:
        """
        Values and parametric derivatives of the functions active at u.

        Parameters:
            u: Parameter point
            n_ders: 0, 1 or 2
            iel: Element whose polynomial pieces should be used
        """
        u = np.atleast_1d(np.asarray(u, dtype=np.float64))
        if iel is None:
            iel = self.element_containing(u)
            if iel < 0:
                raise ValueError(f"Parameter point {u} outside domain {self.domain}")

        npar = self.n_dim_parametric
        nodes = self._element_functions[iel]
        bounds = self.element_bounds(iel)

        values = np.zeros(len(nodes))
        first = np.zeros((len(nodes), npar)) if n_ders >= 1 else None
        second = np.zeros((len(nodes), npar, npar)) if n_ders >= 2 else None

        for k, i in enumerate(nodes):
            f = self.functions[i]
            d1 = [eval_local_bspline_1d(f.knots[d], u[d], n_ders, bounds[d])
                  for d in range(npar)]
            values[k] = f.weight * np.prod([d1[d][0] for d in range(npar)])
            if first is not None:
                for a in range(npar):
                    first[k, a] = f.weight * np.prod(
                        [d1[d][1 if d == a else 0] for d in range(npar)])
            if second is not None:
                for a in range(npar):
                    for b in range(a, npar):
                        counts = [0] * npar
                        counts[a] += 1
                        counts[b] += 1
                        second[k, a, b] = f.weight * np.prod(
                            [d1[d][counts[d]] for d in range(npar)])
                        second[k, b, a] = second[k, a, b]

        return BasisDerivs(nodes.copy(), values, first, second)

    def eval_point(self, u: Sequence[float], iel: Optional[int] = None) -> np.ndarray:
        bd = self.compute_basis(u, 0, iel)
        return bd.values @ self.control_points[bd.nodes]

    def greville_points(self) -> np.ndarray:
        """Greville point of every function, shape (n_basis, n_dim_parametric)."""
        return np.array([f.greville() for f in self.functions])

    def greville_parameters(self, direction: int) -> np.ndarray:
        return self.greville_points()[:, direction]

    # --- Refinement ----------------------------------------------------------

    def _merge_meshline(self, line: Meshline) -> Meshline:
        """Merge a new line with collinear lines it touches or overlaps."""
        merged = True
        while merged:
            merged = False
            for k, old in enumerate(self.meshlines):
                if old.direction != line.direction or abs(old.value - line.value) > TOL:
                    continue
                differ = [e for e in range(self.n_dim_parametric)
                          if e != line.direction and
                          (abs(old.lower[e] - line.lower[e]) > TOL or
                           abs(old.upper[e] - line.upper[e]) > TOL)]
                if len(differ) > 1:
                    continue
                if differ:
                    e = differ[0]
                    if old.upper[e] < line.lower[e] - TOL or line.upper[e] < old.lower[e] - TOL:
                        continue
                line = Meshline(line.direction, line.value,
                                np.minimum(old.lower, line.lower),
                                np.maximum(old.upper, line.upper))
                del self.meshlines[k]
                merged = True
                break
        return line

    def _split_elements(self, line: Meshline):
        d = line.direction
        for iel in range(len(self.elements)):
            lo, hi = self.elements[iel]
            if line.crosses(lo, hi):
                upper_lo = lo.copy()
                upper_lo[d] = line.value
                lower_hi = hi.copy()
                lower_hi[d] = line.value
                self.elements[iel] = (lo, lower_hi)
                self.elements.append((upper_lo, hi))

    def _split_function(self, f: LRFunction, line: Meshline,
                        table: Dict[tuple, LRFunction]) -> List[LRFunction]:
        d = line.direction
        c = line.value
        t = f.knots[d]
        p = len(t) - 2
        tau = tuple(sorted(t + (c,)))

        alpha1 = 1.0 if c >= t[p] else (c - t[0]) / (t[p] - t[0])
        alpha2 = 1.0 if c <= t[1] else (t[p + 1] - c) / (t[p + 1] - t[1])

        created = []
        for knots_d, alpha in ((tau[:p + 2], alpha1), (tau[1:], alpha2)):
            knots = tuple(knots_d if e == d else f.knots[e] for e in range(len(f.knots)))
            gamma = f.weight * alpha
            g = table.get(knots)
            if g is None:
                g = LRFunction(knots, f.coef.copy(), gamma)
                table[knots] = g
                created.append(g)
            else:
                total = g.weight + gamma
                g.coef = (g.coef * g.weight + f.coef * gamma) / total
                g.weight = total
        return created

    def insert_line(self, direction: int, value: float,
                    lower: Optional[Sequence[float]] = None,
                    upper: Optional[Sequence[float]] = None) -> bool:
        """
        Insert a meshline at u[direction] = value.

        Parameters:
            direction: Parametric direction of the line normal (0-based)
            value: Parameter value of the line
            lower, upper: Extent of the line in all directions (the entries
                          for `direction` are ignored); default the domain

        Returns:
            False if the line is invalid (nothing is changed)
        """
        npar = self.n_dim_parametric
        if not 0 <= direction < npar:
            logger.error("Invalid meshline direction %d", direction)
            return False
        a, b = self.domain[direction]
        if not a < value < b:
            logger.error("Meshline value %g outside the open domain (%g, %g)", value, a, b)
            return False

        lo = np.array([d[0] for d in self.domain]) if lower is None else np.asarray(lower, float).copy()
        hi = np.array([d[1] for d in self.domain]) if upper is None else np.asarray(upper, float).copy()
        lo[direction] = hi[direction] = value
        for e in range(npar):
            if e != direction and not lo[e] < hi[e]:
                logger.error("Empty meshline extent in direction %d", e)
                return False

        line = self._merge_meshline(Meshline(direction, float(value), lo, hi))
        self.meshlines.append(line)
        self._split_elements(line)

        table = {f.knots: f for f in self.functions}
        pending = []
        for f in list(self.functions):
            if line.splits(f):
                del table[f.knots]
                pending.extend(self._split_function(f, line, table))

        # New functions may be traversed by lines inserted earlier
        while pending:
            f = pending.pop()
            if table.get(f.knots) is not f:
                continue
            for ml in self.meshlines:
                if ml.splits(f):
                    del table[f.knots]
                    pending.extend(self._split_function(f, ml, table))
                    break

        order = {id(f): k for k, f in enumerate(self.functions)}
        self.functions = sorted(table.values(),
                                key=lambda f: (order.get(id(f), len(order)), f.knots))
        self._rebuild_topology()
        return True

    def refine_elements(self, elements: Sequence[int]) -> bool:
        """
        Refine elements by meshlines through their midpoints.

        Each line spans the union of the supports of the functions active on
        the element, so all of them are split.
        """
        npar = self.n_dim_parametric
        if any(not 0 <= iel < self.n_elements for iel in elements):
            logger.error("Invalid element index in refinement list %s", list(elements))
            return False

        lines = []
        for iel in elements:
            lo, hi = self.elements[iel]
            funcs = [self.functions[i] for i in self._element_functions[iel]]
            f_lo = np.min([f.lower for f in funcs], axis=0)
            f_hi = np.max([f.upper for f in funcs], axis=0)
            for d in range(npar):
                lines.append((d, 0.5 * (lo[d] + hi[d]), f_lo, f_hi))

        for d, value, f_lo, f_hi in lines:
            if not self.insert_line(d, value, f_lo, f_hi):
                return False
        return True

    def insert_global_knots(self, direction: int, values: Sequence[float]) -> bool:
        """Insert full-domain meshlines, the LR analogue of knot insertion."""
        for value in values:
            if not self.insert_line(direction, value):
                return False
        return True

    def element_intervals(self, direction: int) -> List[Tuple[float, float]]:
        """Distinct element intervals in one direction."""
        intervals = {(float(lo[direction]), float(hi[direction])) for lo, hi in self.elements}
        return sorted(intervals)

    # --- Copies --------------------------------------------------------------

    def copy(self) -> 'LRSpline':
        functions = [LRFunction(f.knots, f.coef.copy(), f.weight) for f in self.functions]
        elements = [(lo.copy(), hi.copy()) for lo, hi in self.elements]
        meshlines = [Meshline(m.direction, m.value, m.lower.copy(), m.upper.copy())
                     for m in self.meshlines]
        return LRSpline(functions, elements, meshlines, self.domain)

    def copy_with_coefs(self, coefs: np.ndarray) -> 'LRSpline':
        """LR spline on the same basis with new coefficients (any dimension)."""
        result = self.copy()
        result.set_control_points(coefs)
        return result
