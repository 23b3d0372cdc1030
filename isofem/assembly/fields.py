"""
Solution fields on a patch basis.

A SplineField holds nodal values of one basis of a patch and evaluates
them, and their physical derivatives, at integration points. Integrands
use it for fields registered by other simulators on a different basis.
"""

import logging
import numpy as np
from typing import Optional, Sequence

from .finite_element import FiniteElement, MixedFiniteElement

logger = logging.getLogger(__name__)


class SplineField:
    """
    Nodal field on one basis of a patch.

    Parameters:
        patch: Patch with generated topology
        values: Nodal values, nf per node, nodes in basis order
        basis: Basis the values refer to (1 or 2)
        nf: Number of field components
    """

    def __init__(self, patch, values: np.ndarray, basis: int = 1, nf: int = 1,
                 name: str = ""):
        n = patch.n_basis(basis)
        values = np.asarray(values, dtype=np.float64).ravel()
        if values.size < n * nf:
            raise ValueError(f"Field needs {n * nf} values, got {values.size}")
        self.patch = patch
        self.basis = basis
        self.nf = nf
        self.name = name
        self.values = values[:n * nf].reshape(n, nf)

    def _basis_data(self, fe: FiniteElement):
        if self.basis == 2 and isinstance(fe, MixedFiniteElement):
            return fe.N2, fe.dN2dX
        return fe.N, fe.dNdX

    def value_node(self, node: int) -> np.ndarray:
        return self.values[node]

    def value_fe(self, fe: FiniteElement) -> np.ndarray:
        """Field value at an integration point, shape (nf,)."""
        N, _ = self._basis_data(fe)
        return N @ self.values[self.patch.element_nodes(fe.iel, self.basis)]

    def grad_fe(self, fe: FiniteElement) -> np.ndarray:
        """Physical gradient at an integration point, shape (nf, nsd)."""
        _, dNdX = self._basis_data(fe)
        return (dNdX.T @ self.values[self.patch.element_nodes(fe.iel, self.basis)]).T

    def hessian_fe(self, fe: FiniteElement) -> Optional[np.ndarray]:
        """Physical second derivatives, shape (nf, nsd, nsd), if available."""
        if fe.d2NdX2 is None or (self.basis == 2 and isinstance(fe, MixedFiniteElement)):
            logger.error("No second derivatives available for field %s", self.name)
            return None
        vals = self.values[self.patch.element_nodes(fe.iel, self.basis)]
        return np.einsum('nij,nc->cij', fe.d2NdX2, vals)

    def value_point(self, u: Sequence[float]) -> Optional[np.ndarray]:
        """Field value at a parameter point."""
        iel = self.patch.find_element(u)
        if iel < 0:
            logger.error("Point %s is outside the patch", list(u))
            return None
        fe, _ = self.patch.compute_fe(iel, u)
        return self.value_fe(fe)
