"""
Patches over LR B-spline geometries.

An UnstructuredPatch is created from a (non-rational) tensor-product
spline, which is converted to an LR B-spline. Global refinement inserts
full-domain meshlines; refine_elements adds local meshlines through the
midpoints of selected elements.

Mixed LR patches keep the tensor-product seed spline and the list of
global meshlines, so the enriched basis can be rebuilt with the same
element structure as the geometry basis. Local refinement of mixed
patches is not supported.
"""

import logging
import numpy as np
from typing import List, Optional, Sequence, Union

from .base import PatchBase
from ..geometry.lrspline import LRSpline, TOL
from ..geometry.spline import SplineGeometry
from ..io.config import MixedBasisConfig, IntegrationConfig

logger = logging.getLogger(__name__)


class UnstructuredPatch(PatchBase):
    """Patch whose bases are LR B-splines."""

    structured = False

    def __init__(self, spline: Union[SplineGeometry, LRSpline],
                 n_fields: Sequence[int] = (1,),
                 mixed_config: Optional[MixedBasisConfig] = None,
                 integration: Optional[IntegrationConfig] = None):
        if isinstance(spline, LRSpline):
            self.seed = None
            lr = spline
        else:
            self.seed = spline.copy()
            lr = LRSpline.from_spline(spline)

        n = (n_fields,) if isinstance(n_fields, int) else tuple(n_fields)
        if len(n) > 1 and self.seed is None:
            raise ValueError("Mixed LR patches must be created from a tensor-product spline")

        self._lines = []
        self._locally_refined = False
        super().__init__(lr, n, mixed_config, integration)

    def _replay(self, seed: SplineGeometry) -> LRSpline:
        lr = LRSpline.from_spline(seed)
        for d, value in self._lines:
            lr.insert_line(d, value)
        return lr

    def _build_bases(self) -> Optional[List[LRSpline]]:
        if not self.mixed:
            return [self.spline]

        high = self.seed.copy()
        ones = (1,) * self.n_dim
        if self.mixed_config.use_cp_minus1:
            high.raise_order_smooth(*ones)
        else:
            high.raise_order(*ones)
        high = self._replay(high)

        if self.mixed_config.use_low_order_basis1:
            return [self.spline, high]
        return [high, self.spline]

    def _element_breaks(self, direction: int) -> np.ndarray:
        values = np.sort(np.concatenate([[lo[direction], hi[direction]]
                                         for lo, hi in self.spline.elements]))
        keep = np.concatenate([[True], np.diff(values) > TOL])
        return values[keep]

    def _refine_knots(self, direction: int, relative_positions: Sequence[float]) -> bool:
        breaks = self._element_breaks(direction)
        values = [a + r * (b - a) for a, b in zip(breaks[:-1], breaks[1:])
                  for r in relative_positions]
        for value in values:
            if not self.spline.insert_line(direction, value):
                return False
            self._lines.append((direction, value))
        return True

    def _raise_order(self, r: Sequence[int]) -> bool:
        if self.seed is None or self._locally_refined:
            logger.error("Order elevation of a locally refined LR patch is not supported")
            return False
        self.seed.raise_order(*r)
        self.spline = self._replay(self.seed)
        return True

    def refine_elements(self, elements: Sequence[int]) -> bool:
        """
        Refine the given elements locally.

        Parameters:
            elements: Element indices of the current mesh
        """
        if self.mixed:
            logger.error("Local refinement of mixed LR patches is not supported")
            return False
        if not self.spline.refine_elements(elements):
            return False
        self._locally_refined = True
        return self._update_bases()

    def boundary_nodes(self, signed_dirs: Sequence[int], basis: int = 1) -> np.ndarray:
        b = self.bases[basis - 1]
        nodes = []
        for i, f in enumerate(b.functions):
            on_boundary = True
            for s in signed_dirs:
                d = abs(s) - 1
                t = f.knots[d]
                p = len(t) - 2
                if s < 0:
                    on_boundary = t[p] <= b.domain[d][0] + TOL
                else:
                    on_boundary = t[1] >= b.domain[d][1] - TOL
                if not on_boundary:
                    break
            if on_boundary:
                nodes.append(i)
        return np.array(nodes, dtype=int)

    def find_node(self, relative_params: Sequence[float], basis: int = 1) -> int:
        b = self.bases[basis - 1]
        target = np.array([lo + r * (hi - lo) for r, (lo, hi) in zip(relative_params, b.domain)])
        dist = np.linalg.norm(b.greville_points() - target, axis=1)
        return int(np.argmin(dist))

    def find_element(self, u: Sequence[float]) -> int:
        return self.geometry.element_containing(u)
