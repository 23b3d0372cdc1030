"""
Primitive geometry factory functions.

Simple single-patch geometries used to set up analyses and tests:
- Straight lines (curves in 1, 2 or 3 space dimensions)
- Rectangles and boxes with identity-like parametrization
- A quarter annulus, which needs rational (NURBS) weights

All factories return a SplineGeometry with open uniform knot vectors.
"""

import numpy as np
from typing import Sequence, Tuple

from .spline import SplineGeometry
from ..discretization.knot_vector import (
    KnotVector, make_uniform_knot_vector, uniform_refinement_knots,
)


def _tensor_greville_points(knot_vectors: Sequence[KnotVector]) -> np.ndarray:
    params = [kv.greville_abscissae() for kv in knot_vectors]
    grids = np.meshgrid(*reversed(params), indexing="ij")
    return np.column_stack([g.ravel() for g in reversed(grids)])


def make_line(p: int = 2, n_elem: int = 4,
              x_range: Tuple[float, float] = (0.0, 1.0),
              physical_dim: int = 1) -> SplineGeometry:
    """
    Straight line from x_range[0] to x_range[1] along the x-axis.

    Control points are placed at the Greville abscissae, so the
    parametrization is linear and u equals the relative arc length.
    """
    kv = make_uniform_knot_vector(n_elem, p)
    x0, x1 = x_range
    cps = np.zeros((kv.n_basis, physical_dim))
    cps[:, 0] = x0 + (x1 - x0) * kv.greville_abscissae()
    return SplineGeometry([kv], cps)


def make_rectangle(p: int = 2, n_elem_u: int = 4, n_elem_v: int = 4,
                   x_range: Tuple[float, float] = (0.0, 1.0),
                   y_range: Tuple[float, float] = (0.0, 1.0),
                   physical_dim: int = 2) -> SplineGeometry:
    """
    Rectangle [x0,x1] x [y0,y1] with an affine parametrization.

    Parameters:
        p: Polynomial degree in both directions
        n_elem_u, n_elem_v: Number of elements per direction
        x_range, y_range: Physical extent
        physical_dim: 2, or 3 for a flat surface in the plane z=0
    """
    kvs = [make_uniform_knot_vector(n_elem_u, p), make_uniform_knot_vector(n_elem_v, p)]
    g = _tensor_greville_points(kvs)
    cps = np.zeros((len(g), physical_dim))
    cps[:, 0] = x_range[0] + (x_range[1] - x_range[0]) * g[:, 0]
    cps[:, 1] = y_range[0] + (y_range[1] - y_range[0]) * g[:, 1]
    return SplineGeometry(kvs, cps)


def make_unit_square(p: int = 2, n_elem_u: int = 4, n_elem_v: int = 4) -> SplineGeometry:
    """The unit square, where parametric and physical coordinates coincide."""
    return make_rectangle(p, n_elem_u, n_elem_v)


def make_box(p: int = 2, n_elem: Tuple[int, int, int] = (2, 2, 2),
             ranges: Sequence[Tuple[float, float]] = ((0.0, 1.0),) * 3) -> SplineGeometry:
    """Axis-aligned box with an affine trivariate parametrization."""
    kvs = [make_uniform_knot_vector(n, p) for n in n_elem]
    g = _tensor_greville_points(kvs)
    cps = np.zeros((len(g), 3))
    for d in range(3):
        lo, hi = ranges[d]
        cps[:, d] = lo + (hi - lo) * g[:, d]
    return SplineGeometry(kvs, cps)


def make_quarter_annulus(inner_radius: float = 1.0, outer_radius: float = 2.0,
                         p: int = 2, n_elem_radial: int = 2,
                         n_elem_angular: int = 2) -> SplineGeometry:
    """
    Quarter of an annulus in the first quadrant.

    The first parametric direction is radial (inner to outer radius), the
    second angular (from the x-axis to the y-axis). The circular arcs are
    exact, with weight cos(45 deg) at the middle control points.

    Parameters:
        inner_radius, outer_radius: Radii of the circular edges
        p: Polynomial degree (at least 2)
        n_elem_radial, n_elem_angular: Number of elements per direction
    """
    if p < 2:
        raise ValueError("A circular arc needs at least degree 2")

    kv_r = KnotVector(np.array([0.0, 0.0, 1.0, 1.0]), 1)
    kv_a = KnotVector(np.array([0.0, 0.0, 0.0, 1.0, 1.0, 1.0]), 2)

    w = np.sqrt(0.5)
    arc = np.array([[1.0, 0.0], [1.0, 1.0], [0.0, 1.0]])
    cps = np.zeros((6, 2))
    weights = np.ones(6)
    for j in range(3):
        for i, r in enumerate((inner_radius, outer_radius)):
            cps[2 * j + i] = r * arc[j]
            weights[2 * j + i] = w if j == 1 else 1.0

    surface = SplineGeometry([kv_r, kv_a], cps, weights)
    surface.raise_order(p - 1, p - 2)
    surface.insert_knots(0, uniform_refinement_knots(surface.knot_vectors[0], n_elem_radial - 1))
    surface.insert_knots(1, uniform_refinement_knots(surface.knot_vectors[1], n_elem_angular - 1))
    return surface
