"""
Gauss-Legendre quadrature for element integration.

n points integrate polynomials up to degree 2n-1 exactly. For a spline
basis of order p+1 the default rule uses p+1 points per direction; the
recovery algorithms use reduced rules with (order - m) points, where m is
the derivative order of the recovered quantity.

The reference domain is [0, 1] in each direction. A rule is mapped onto a
parametric element box by scaling, and the weights of the reference rule
sum to one, so the parametric element measure is applied separately.

Usage:
    points, weights = gauss_legendre_1d(n)
    quad = GaussQuadrature((3, 3))
    params = quad.map_to_element(((0.0, 0.5), (0.25, 0.5)))
"""

import numpy as np
from typing import Sequence, Tuple
from functools import lru_cache


@lru_cache(maxsize=32)
def gauss_legendre_1d(n: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Gauss-Legendre quadrature points and weights on [0, 1].

    Parameters:
        n: Number of quadrature points

    Returns:
        (points, weights), both of length n; the weights sum to 1
    """
    if n < 1:
        raise ValueError("Need at least 1 quadrature point")

    points_std, weights_std = np.polynomial.legendre.leggauss(n)

    # Map from [-1, 1] to [0, 1]
    points = 0.5 * (points_std + 1.0)
    weights = 0.5 * weights_std

    points.setflags(write=False)
    weights.setflags(write=False)
    return points, weights


def gauss_legendre_nd(n_per_dir: Sequence[int]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Tensor-product Gauss-Legendre rule on [0,1]^d.

    The first direction runs fastest, matching the ordering of the
    tensor-product basis functions and control points.

    Parameters:
        n_per_dir: Number of points in each direction

    Returns:
        (points, weights) with shapes (n_total, d) and (n_total,)
    """
    rules = [gauss_legendre_1d(int(n)) for n in n_per_dir]
    # meshgrid with ij indexing on the reversed directions gives x-fastest order
    grids = np.meshgrid(*[r[0] for r in reversed(rules)], indexing="ij")
    points = np.column_stack([g.ravel() for g in reversed(grids)])

    weights = np.ones(1)
    for _, w in reversed(rules):
        weights = np.outer(weights, w).ravel()

    return points, weights


class GaussQuadrature:
    """
    Tensor-product Gauss rule for one parametric element.

    Attributes:
        n_points_per_dir: Number of quadrature points per parametric direction
    """

    def __init__(self, n_points_per_dir: Tuple[int, ...]):
        if not 1 <= len(n_points_per_dir) <= 3:
            raise ValueError(f"Unsupported dimension: {len(n_points_per_dir)}")

        self.n_points_per_dir = tuple(int(n) for n in n_points_per_dir)
        self.n_dim = len(self.n_points_per_dir)
        self._points, self._weights = gauss_legendre_nd(self.n_points_per_dir)

    @property
    def n_points(self) -> int:
        """Total number of quadrature points."""
        return len(self._weights)

    @property
    def points(self) -> np.ndarray:
        """Points on the reference element [0,1]^d, shape (n_points, n_dim)."""
        return self._points

    @property
    def weights(self) -> np.ndarray:
        """Weights of the reference rule, shape (n_points,)."""
        return self._weights

    def map_to_element(self, bounds: Sequence[Tuple[float, float]]) -> np.ndarray:
        """
        Parameter values of the quadrature points inside an element box.

        Parameters:
            bounds: ((u_min, u_max), ...) for each parametric direction

        Returns:
            Array of shape (n_points, n_dim)
        """
        lower = np.array([b[0] for b in bounds])
        upper = np.array([b[1] for b in bounds])
        return lower + self._points * (upper - lower)

    @classmethod
    def for_orders(cls, orders: Tuple[int, ...],
                   derivative_order: int = 0) -> 'GaussQuadrature':
        """
        Rule with (order - derivative_order) points per direction.

        This is the reduced rule of the superconvergent sampling points;
        with derivative_order = 0 it is the full rule for a basis of the
        given orders (p+1).
        """
        n_pts = tuple(max(o - derivative_order, 1) for o in orders)
        return cls(n_pts)
