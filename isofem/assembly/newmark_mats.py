"""
Element matrices for Newmark-type time integration.

The integrand fills the separate contributions

    A[1] = M (mass), A[2] = K (tangent stiffness)
    b[0] = R (residual, external minus internal forces), b[1] = M a

and the element solution vectors vec = [d, ..., v, a]. The effective
Newton matrix and residual are combined on demand from the integration
constants.
"""

import numpy as np

from .integrals import ElementMatrices


class NewmarkMats(ElementMatrices):
    """
    Element matrices of a dynamic problem.

    Parameters:
        a1: Mass-proportional damping coefficient
        a2: Stiffness-proportional damping coefficient
        b: Newmark beta, or alpha_m for generalized-alpha; negative
           selects displacement increments as unknowns
        c: Newmark gamma, or alpha_f for generalized-alpha
        generalized_alpha: Interpret b and c as generalized-alpha parameters
    """

    def __init__(self, a1: float = 0.0, a2: float = 0.0, b: float = 0.0,
                 c: float = 0.0, generalized_alpha: bool = False,
                 n_dof: int = 0, with_lhs: bool = True):
        super().__init__(3, 2, n_dof, with_lhs=with_lhs)
        self.alpha1 = a1
        self.alpha2 = a2
        self.slv_disp = b < 0.0
        self.h = 0.0

        if generalized_alpha:
            self.alpha_m = abs(b)
            self.alpha_f = c
            alpha = self.alpha_f - self.alpha_m
            self.beta = 0.25 * (1.0 - alpha) ** 2
            self.gamma = 0.5 - alpha
        else:
            self.alpha_m = 1.0
            self.alpha_f = 1.0
            self.beta = abs(b)
            self.gamma = c

    def set_step_size(self, dt: float):
        self.h = dt

    def get_newton_matrix(self) -> np.ndarray:
        """Effective tangent combined from the mass and stiffness matrices."""
        if len(self.A) < 3:
            return self.A[0]
        h = self.h
        N = self.A[1] * (self.alpha_m + self.alpha_f * self.alpha1 * self.gamma * h)
        N = N + self.A[2] * (self.alpha_f * (self.alpha2 * self.gamma + self.beta * h) * h)
        if self.slv_disp:
            N = N / (self.beta * h * h)
        self.A[0] = N
        return self.A[0]

    def get_rhs_vector(self) -> np.ndarray:
        """Effective residual with inertia and damping forces subtracted."""
        rhs = self.b[0].copy()
        if len(self.vec) > 2 and len(self.A) > 2:
            ia = len(self.vec) - 1
            iv = len(self.vec) - 2
            rhs -= self.A[1] @ self.vec[ia]
            if self.alpha1 > 0.0:
                rhs -= self.alpha1 * (self.A[1] @ self.vec[iv])
            if self.alpha2 > 0.0:
                rhs -= self.alpha2 * (self.A[2] @ self.vec[iv])
        return rhs
