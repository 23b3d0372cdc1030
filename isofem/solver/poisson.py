"""
Poisson equation integrand.

Solves the scalar Poisson equation:
    -div(k grad u) = f    in Ω
                 u = g    on Γ_D (Dirichlet boundary)
    -k grad u . n  = h    on Γ_N (Neumann boundary)

Weak form:
    ∫_Ω k ∇u · ∇v dΩ = ∫_Ω f v dΩ - ∫_Γ_N h v dΓ    for all v in V_0

Element stiffness matrix and load vector:
    K_ij = ∫_e k ∇N_i · ∇N_j dΩ,    f_i = ∫_e f N_i dΩ

The secondary solution is the flux q = -k ∇u, which is what the recovery
methods project onto the spline basis.
"""

import numpy as np
from typing import Callable, Optional

from ..assembly.finite_element import FiniteElement
from ..assembly.integrals import ElementMatrices, ElementNorm
from ..assembly.integrand import Integrand, NormIntegrand, extract_element_vector


class Poisson(Integrand):
    """
    Integrand of the Poisson equation.

    Example usage:
        patch = StructuredPatch(make_unit_square(p=2, n_elem_u=4, n_elem_v=4))
        sim = Simulator([patch], Poisson(nsd=2, source=lambda x, y: 1.0))
        for face in (-1, 1, -2, 2):
            patch.constrain_face(face)
        sim.preprocess()
        u = sim.solve_static()
    """

    def __init__(self, nsd: int = 2, source: Optional[Callable] = None,
                 diffusivity: float = 1.0, flux: Optional[Callable] = None):
        """
        Parameters:
            nsd: Number of space dimensions
            source: Source function f(x, y, ...), defaults to 0
            diffusivity: Diffusion coefficient k
            flux: Normal flux h(x, y, ...) on Neumann boundaries
        """
        super().__init__(nsd, 1)
        self.source = source
        self.diffusivity = diffusivity
        self.flux = flux

    def get_no_fields(self, fld: int = 2) -> int:
        return 1 if fld == 1 else self.nsd

    def get_field2_name(self, i: int, prefix: Optional[str] = None) -> str:
        name = "q_" + "xyz"[i]
        return f"{prefix} {name}" if prefix else name

    def evaluate(self, elm: ElementMatrices, fe: FiniteElement, X: np.ndarray) -> bool:
        if elm.A:
            elm.A[0] += self.diffusivity * (fe.dNdX @ fe.dNdX.T) * fe.detJxW
        if self.source is not None:
            elm.b[0] += self.source(*X) * fe.N * fe.detJxW
        return True

    def evaluate_bou(self, elm: ElementMatrices, fe: FiniteElement, X: np.ndarray,
                     normal: np.ndarray) -> bool:
        if self.flux is not None:
            elm.b[0] -= self.flux(*X) * fe.N * fe.detJxW
        return True

    def eval_sol(self, fe: FiniteElement, X: np.ndarray, mnpc) -> Optional[np.ndarray]:
        if not self.primsol:
            return None
        ue = extract_element_vector(self.primsol[0], mnpc, 1)
        return -self.diffusivity * (fe.dNdX.T @ ue)


class PoissonNorm(NormIntegrand):
    """
    Solution norms of the Poisson problem.

    Values (squared, sum over the elements):
        0: |u_h|^2 in L2
        1: energy norm a(u_h, u_h)
        2: |u - u_h|^2 in L2, if the exact solution is given
        3: |grad(u - u_h)|^2 in L2, if the exact gradient is given
    """

    def __init__(self, problem: Poisson, exact: Optional[Callable] = None,
                 exact_grad: Optional[Callable] = None):
        super().__init__(problem)
        self.exact = exact
        self.exact_grad = exact_grad

    def n_norms(self) -> int:
        return 4

    def evaluate(self, elm: ElementNorm, fe: FiniteElement, X: np.ndarray) -> bool:
        ue = elm.vec[0]
        uh = fe.N @ ue
        grad = fe.dNdX.T @ ue
        elm.values[0] += uh * uh * fe.detJxW
        elm.values[1] += self.problem.diffusivity * grad @ grad * fe.detJxW
        if self.exact is not None:
            elm.values[2] += (self.exact(*X) - uh) ** 2 * fe.detJxW
        if self.exact_grad is not None:
            e = np.asarray(self.exact_grad(*X)) - grad
            elm.values[3] += e @ e * fe.detJxW
        return True
