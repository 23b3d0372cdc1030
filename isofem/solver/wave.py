"""
Scalar wave equation integrand.

    rho u_tt - div(k grad u) = f

In static mode the integrand assembles the stiffness problem
K u = f. In dynamic mode it fills NewmarkMats with the mass matrix M,
the stiffness matrix K, the residual f - K d and the inertia force M a,
from which the Newton matrix and effective residual are combined.
"""

import numpy as np
from typing import Callable, Optional

from ..assembly.finite_element import FiniteElement
from ..assembly.integrals import ElementMatrices, LocalIntegral
from ..assembly.integrand import Integrand, SolutionMode, extract_element_vector
from ..assembly.newmark_mats import NewmarkMats


class ScalarWave(Integrand):
    """
    Integrand of the scalar wave equation.

    Parameters:
        nsd: Number of space dimensions
        density: Mass density rho
        stiffness: Stiffness coefficient k
        source: Load function f(x, y, ..., t), defaults to 0
    """

    def __init__(self, nsd: int = 2, density: float = 1.0, stiffness: float = 1.0,
                 source: Optional[Callable] = None):
        super().__init__(nsd, 1)
        self.density = density
        self.stiffness = stiffness
        self.source = source

    def get_no_fields(self, fld: int = 2) -> int:
        return 1 if fld == 1 else self.nsd

    def get_local_integral(self, nen: int, iel: int, neumann: bool = False) -> LocalIntegral:
        if self.mode is not SolutionMode.DYNAMIC:
            return super().get_local_integral(nen, iel, neumann)

        # int_prm: alpha1, alpha2, 0.5-gamma, beta, gamma
        elm = NewmarkMats(self.int_prm[0], self.int_prm[1], -self.int_prm[3],
                          self.int_prm[4], n_dof=nen * self.npv,
                          with_lhs=not neumann)
        elm.set_step_size(self.dt)
        return elm

    def evaluate(self, elm: ElementMatrices, fe: FiniteElement, X: np.ndarray) -> bool:
        K = self.stiffness * (fe.dNdX @ fe.dNdX.T) * fe.detJxW
        f = 0.0 if self.source is None else self.source(*X, self.time)

        if isinstance(elm, NewmarkMats) and elm.A:
            elm.A[1] += self.density * np.outer(fe.N, fe.N) * fe.detJxW
            elm.A[2] += K
        elif elm.A:
            elm.A[0] += K
        elm.b[0] += f * fe.N * fe.detJxW
        return True

    def finalize_element(self, elm: ElementMatrices) -> bool:
        if isinstance(elm, NewmarkMats) and elm.A and len(elm.vec) > 2:
            elm.b[0] -= elm.A[2] @ elm.vec[0]
            elm.b[1] = elm.A[1] @ elm.vec[-1]
        return True

    def eval_sol(self, fe: FiniteElement, X: np.ndarray, mnpc) -> Optional[np.ndarray]:
        if not self.primsol:
            return None
        ue = extract_element_vector(self.primsol[0], mnpc, 1)
        return fe.dNdX.T @ ue
