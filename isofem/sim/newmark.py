"""
Nonlinear Newmark time integration.

NewmarkNLSIM advances the solution history of a dynamic model:

    solution = [d_n, d_(n-1), ..., v_n, a_n]

The displacement increments are the unknowns of each Newton iteration.
One time step is

    advance_step     shift the displacement history, increment the time
    predict_step     v*, a* from the Newmark relations, increments zeroed
    correct_step     repeated until convergence

solve_step runs the last two and assembles at the time advanced to, so
advance_step must come first for loads and Dirichlet values to be taken
at t_(n+1).

The model (a Simulator) assembles the effective Newton matrix and
residual; its integrand builds NewmarkMats from the integration
parameters set in init():

    int_prm[0] alpha1  mass-proportional damping
    int_prm[1] alpha2  stiffness-proportional damping
    int_prm[2] 0.5 - gamma
    int_prm[3] beta
    int_prm[4] gamma
"""

import logging
import numpy as np
from typing import List, Optional

from .time_step import TimeStep
from ..assembly.integrand import SolutionMode
from ..io.config import NewmarkConfig

logger = logging.getLogger(__name__)


class NewmarkNLSIM:
    """
    Newmark predictor/corrector for nonlinear dynamic problems.

    Attributes:
        model: Simulator assembling the Newton system
        beta, gamma: Newmark parameters (default from alpha = -0.1)
        alpha1, alpha2: Rayleigh damping coefficients
        solution: Solution history [d, ..., v, a]
    """

    def __init__(self, model, config: Optional[NewmarkConfig] = None):
        self.model = model
        self.beta = 0.3025
        self.gamma = 0.6
        self.alpha1 = 0.0
        self.alpha2 = 0.0

        if config is not None:
            self.beta = config.newmark_beta
            self.gamma = config.newmark_gamma
            self.alpha1 = config.alpha1
            self.alpha2 = config.alpha2

        self.solution: List[np.ndarray] = []
        self.inc_dis = np.zeros(0)
        self.pred_vel = np.zeros(0)
        self.pred_acc = np.zeros(0)
        self.f_inert: Optional[np.ndarray] = None

    def set_alpha(self, alpha: float):
        """HHT-alpha parametrization, beta = (1-alpha)^2/4, gamma = 1/2 - alpha."""
        self.beta = 0.25 * (1.0 - alpha) ** 2
        self.gamma = 0.5 - alpha

    def init(self, n_sol: int = 3):
        """Set the integration parameters of the model and size the history."""
        self.model.set_integration_prm(0, self.alpha1)
        self.model.set_integration_prm(1, self.alpha2)
        self.model.set_integration_prm(2, 0.5 - self.gamma)
        self.model.set_integration_prm(3, self.beta)
        self.model.set_integration_prm(4, self.gamma)

        n_sol = max(n_sol, self.model.get_no_solutions())
        n_dofs = self.model.n_dofs
        self.solution = [np.zeros(n_dofs) for _ in range(n_sol)]
        self.inc_dis = np.zeros(n_dofs)
        self.pred_vel = np.zeros(n_dofs)
        self.pred_acc = np.zeros(n_dofs)
        self.f_inert = None

    def init_eq_system(self) -> bool:
        """Newton matrix with two right-hand sides (residual, inertia force)."""
        return self.model.init_system(2)

    def advance_step(self, tp: TimeStep, update_time: bool = True) -> bool:
        """Shift the displacement history and go to the next time instance."""
        for n in range(len(self.solution) - 3, 0, -1):
            self.solution[n][:] = self.solution[n - 1]
        return tp.increment() if update_time else True

    def finalize_rhs_vector(self):
        if self.f_inert is not None:
            self.model.add_to_rhs_vector(0, self.f_inert, self.gamma - 0.5)

    def predict_step(self, tp: TimeStep) -> bool:
        if len(self.solution) < 3:
            return False

        iA = len(self.solution) - 1
        iV = len(self.solution) - 2
        dt = tp.time.dt
        vel = self.solution[iV]
        acc = self.solution[iA]

        self.pred_vel = vel * (self.gamma / self.beta - 1.0) \
            + acc * (0.5 * self.gamma / self.beta - 1.0) * dt
        self.pred_acc = acc * (0.5 / self.beta - 1.0) + vel / (self.beta * dt)

        self.solution[iV] = self.pred_vel.copy()
        self.solution[iA] = self.pred_acc.copy()

        self.inc_dis[:] = 0.0
        self.pred_vel *= -1.0
        self.pred_acc *= -1.0
        return True

    def correct_step(self, tp: TimeStep, linsol: np.ndarray, converged: bool = False) -> bool:
        """
        Update the solution with the increment of one Newton iteration.

        Parameters:
            tp: Time step parameters
            linsol: Displacement increment from the linear solver
            converged: The iterations have converged; cache the inertia force
        """
        if len(self.solution) < 3:
            return False

        iA = len(self.solution) - 1
        iV = len(self.solution) - 2
        dt = tp.time.dt

        self.inc_dis += linsol
        self.solution[0] += linsol
        self.solution[iV] = self.pred_vel + self.inc_dis * (self.gamma / (self.beta * dt))
        self.solution[iA] = self.pred_acc + self.inc_dis / (self.beta * dt * dt)

        if converged:
            self.f_inert = self.model.get_rhs_vector(1, copy=True)

        return self.model.update_configuration(self.solution[0])

    def solve_step(self, tp: TimeStep, max_iter: int = 20, tol: float = 1.0e-10) -> bool:
        """
        Solve one time step by Newton iterations.

        Convergence is declared when the norm of the displacement increment
        is below tol relative to the norm of the displacement.
        """
        self.model.set_mode(SolutionMode.DYNAMIC)
        if not self.predict_step(tp):
            return False

        for it in range(max_iter):
            if not self.model.assemble_system(tp.time.t, self.solution, True,
                                              tp.time.dt, incremental=True):
                return False
            self.finalize_rhs_vector()

            linsol = self.model.solve_system()
            if linsol is None:
                return False

            norm = np.linalg.norm(linsol)
            converged = norm <= tol * max(np.linalg.norm(self.solution[0]), 1.0)
            logger.info("  step %d iteration %d: |du| = %.3e", tp.step + 1, it + 1, norm)
            if not self.correct_step(tp, linsol, converged):
                return False
            if converged:
                return True

        logger.error("Newton iterations did not converge in %d iterations at t=%g",
                     max_iter, tp.time.t)
        return False
