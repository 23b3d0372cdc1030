"""
Finite element data at one integration point.

An instance is filled by the assembly loop for every quadrature point and
handed to the integrand. It carries the basis values and physical
derivatives, the integration weight detJ*dA*w and the parametric position.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class FiniteElement:
    """
    Integration point data for a single-basis element.

    Attributes:
        iel: Element index within the patch
        u: Parametric coordinates of the point
        N: Basis function values, shape (nen,)
        dNdX: Physical first derivatives, shape (nen, nsd)
        d2NdX2: Physical second derivatives, shape (nen, nsd, nsd), or None
        detJxW: Jacobian determinant times quadrature weight
        Xnod: Element nodal coordinates, shape (nen, nsd)
        normal: Outward unit normal on boundary points, otherwise None
    """
    iel: int
    u: np.ndarray
    N: np.ndarray
    dNdX: np.ndarray
    detJxW: float = 0.0
    Xnod: Optional[np.ndarray] = None
    d2NdX2: Optional[np.ndarray] = None
    normal: Optional[np.ndarray] = None

    @property
    def n_basis_functions(self) -> int:
        return len(self.N)


@dataclass
class MixedFiniteElement(FiniteElement):
    """
    Integration point data for an element with two solution bases.

    N/dNdX refer to basis 1, N2/dN2dX to basis 2. Element matrices are
    laid out with all basis 1 DOFs first.
    """
    N2: np.ndarray = field(default_factory=lambda: np.zeros(0))
    dN2dX: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))

    @property
    def bases(self) -> List[np.ndarray]:
        return [self.N, self.N2]
