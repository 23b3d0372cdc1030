"""
Patches over tensor-product B-spline and NURBS geometries.
"""

import logging
import numpy as np
from typing import List, Optional, Sequence

from .base import PatchBase
from ..discretization.knot_vector import relative_refinement_knots
from ..geometry.spline import SplineGeometry
from ..io.config import MixedBasisConfig, IntegrationConfig

logger = logging.getLogger(__name__)


class StructuredPatch(PatchBase):
    """
    Patch whose bases are tensor-product splines.

    For mixed patches the second solution basis is the geometry spline and
    the first is obtained by raising its order by one in every direction,
    either keeping the knot multiplicities (same continuity) or, with
    use_cp_minus1, keeping the interior knots simple (C^(p-1)).
    use_low_order_basis1 swaps the two bases.

    Example:
        patch = StructuredPatch(make_unit_square(p=2, n_elem_u=4, n_elem_v=4))
        patch.generate_fem_topology()
    """

    structured = True

    def __init__(self, spline: SplineGeometry, n_fields: Sequence[int] = (1,),
                 mixed_config: Optional[MixedBasisConfig] = None,
                 integration: Optional[IntegrationConfig] = None):
        super().__init__(spline, n_fields, mixed_config, integration)

    def _build_bases(self) -> Optional[List[SplineGeometry]]:
        if not self.mixed:
            return [self.spline]

        low = self.spline.copy()
        high = self.spline.copy()
        ones = (1,) * self.n_dim
        if self.mixed_config.use_cp_minus1:
            high.raise_order_smooth(*ones)
        else:
            high.raise_order(*ones)

        if self.mixed_config.use_low_order_basis1:
            return [low, high]
        return [high, low]

    def _refine_knots(self, direction: int, relative_positions: Sequence[float]) -> bool:
        kv = self.spline.knot_vectors[direction]
        self.spline.insert_knots(direction, relative_refinement_knots(kv, relative_positions))
        return True

    def _raise_order(self, r: Sequence[int]) -> bool:
        self.spline.raise_order(*r)
        return True

    def n_basis_per_dir(self, basis: int = 1):
        return self.bases[basis - 1].n_basis_per_dir

    def boundary_nodes(self, signed_dirs: Sequence[int], basis: int = 1) -> np.ndarray:
        b = self.bases[basis - 1]
        sizes = b.n_basis_per_dir
        nodes = []
        for i in range(b.n_control_points):
            idx = b.tensor_index(i, sizes)
            on_boundary = True
            for s in signed_dirs:
                d = abs(s) - 1
                if idx[d] != (0 if s < 0 else sizes[d] - 1):
                    on_boundary = False
                    break
            if on_boundary:
                nodes.append(i)
        return np.array(nodes, dtype=int)

    def find_node(self, relative_params: Sequence[float], basis: int = 1) -> int:
        b = self.bases[basis - 1]
        idx = [int(round(r * (n - 1))) for r, n in zip(relative_params, b.n_basis_per_dir)]
        return b.flat_index(idx)

    def find_element(self, u: Sequence[float]) -> int:
        try:
            return self.geometry.find_element(u)
        except ValueError:
            return -1
