"""
Simulator: equation system of a set of patches and one integrand.

The simulator numbers the nodes of its patches, sets up the DOF offsets
(madof), drives the patch integration loops into a SystemAssembly,
applies Dirichlet conditions by elimination and solves the system.

Typical use:
    sim = Simulator([patch], Poisson(nsd=2, source=f))
    sim.preprocess()
    u = sim.solve_static()

Dirichlet conditions are given by codes: patch.constrain_*() with code 0
is homogeneous, add_dirichlet() registers a constant or a function f(X, t)
for one patch face, projected onto the face nodes.

Errors are logged and reported as False/None return values.
"""

import logging
import numpy as np
from scipy import sparse
from typing import Callable, Dict, List, Optional, Sequence, Union

from .dependency import SimDependency
from .linalg import solve_sparse
from ..assembly.integrals import GlobalSum, SystemAssembly
from ..assembly.integrand import Integrand, NormIntegrand, SolutionMode
from ..assembly.recovery import ProjectionMethod, face_l2_projection, project_solution

logger = logging.getLogger(__name__)

DirichletValue = Union[float, Callable]


class Simulator(SimDependency):
    """
    Linear or linearized equation system over a set of patches.

    Attributes:
        patches: Patches of the model
        problem: Integrand of the interior
        madof: Offset of the first equation of each global node
        eq_sys: Current equation system, created by init_system
    """

    def __init__(self, patches: Sequence, problem: Integrand, n_solutions: int = 1):
        super().__init__()
        self.patches = list(patches)
        self.problem = problem
        self.n_solutions = n_solutions
        self.madof = np.zeros(1, dtype=int)
        self.eq_sys: Optional[SystemAssembly] = None
        self._neumann: List = []
        self._dirichlet: Dict[int, tuple] = {}
        self._bc_values: Dict[int, float] = {}
        self._next_code = 1

    # --- Setup ---------------------------------------------------------------

    def preprocess(self) -> bool:
        """Generate the patch topologies, number the nodes and the DOFs."""
        n_fields = []
        start = 0
        for p, patch in enumerate(self.patches):
            if not patch.has_topology and not patch.generate_fem_topology():
                logger.error("Failed to generate topology of patch %d", p + 1)
                return False
            patch.renumber_nodes(start)
            start += patch.n_nodes
            n_fields.append(patch.node_fields())

        nf = np.concatenate(n_fields) if n_fields else np.zeros(0, dtype=int)
        self.madof = np.concatenate([[0], np.cumsum(nf)]).astype(int)
        logger.info("Model with %d patches, %d nodes and %d DOFs",
                    len(self.patches), len(nf), self.n_dofs)
        return True

    @property
    def n_dofs(self) -> int:
        return int(self.madof[-1])

    def get_no_solutions(self) -> int:
        return self.n_solutions

    def init_system(self, n_rhs: int = 1) -> bool:
        if self.n_dofs == 0:
            logger.error("No DOFs, call preprocess() first")
            return False
        self.eq_sys = SystemAssembly(self.madof, n_rhs)
        return True

    def set_mode(self, mode: SolutionMode):
        self.problem.set_mode(mode)

    def set_integration_prm(self, i: int, prm: float):
        self.problem.set_integration_prm(i, prm)

    # --- Boundary conditions -------------------------------------------------

    def add_neumann(self, pindx: int, face: int, integrand: Integrand):
        """Boundary integrand on one face of patch pindx (0-based)."""
        self._neumann.append((pindx, face, integrand))

    def add_dirichlet(self, pindx: int, face: int, value: DirichletValue = 0.0,
                      dof: int = 1) -> bool:
        """
        Prescribe values on one face of a patch.

        Parameters:
            pindx: Patch index (0-based)
            face: -(d+1) for the start, +(d+1) for the end of direction d
            value: Constant, or function f(X, t) returning one value per
                   constrained component
            dof: Components to constrain, e.g. 12
        """
        if not 0 <= pindx < len(self.patches):
            logger.error("Invalid patch index %d", pindx)
            return False
        patch = self.patches[pindx]
        code = self._next_code
        if not patch.constrain_face(face, dof, code):
            return False
        self._next_code += 1
        self._dirichlet[code] = (pindx, face, value, patch.dof_components(dof))
        return True

    def dirichlet_values(self, time: float = 0.0) -> Optional[Dict[int, float]]:
        """Prescribed value of every constrained equation at a time."""
        values = {}
        projected = {}
        for code, (pindx, face, value, comps) in self._dirichlet.items():
            if callable(value):
                result = face_l2_projection(self.patches[pindx], face, value, time, len(comps))
                if result is None:
                    return None
                projected[code] = dict(zip(result[0].tolist(), result[1]))

        for patch in self.patches:
            for (node, comp), code in patch.dirichlet.items():
                eq = int(self.madof[patch.mlgn[node]]) + comp - 1
                if code == 0 or code not in self._dirichlet:
                    values[eq] = 0.0
                elif code in projected:
                    comps = self._dirichlet[code][3]
                    values[eq] = float(projected[code][node][comps.index(comp)])
                else:
                    values[eq] = float(self._dirichlet[code][2])
        return values

    def set_dirichlet_values(self, vec: np.ndarray, time: float = 0.0) -> bool:
        """Write the prescribed values into a solution vector."""
        values = self.dirichlet_values(time)
        if values is None:
            return False
        for eq, v in values.items():
            vec[eq] = v
        return True

    # --- Assembly and solution -----------------------------------------------

    def assemble_system(self, time: float = 0.0,
                        prev_sol: Sequence[np.ndarray] = (),
                        new_lhs: bool = True, dt: float = 0.0,
                        incremental: bool = False) -> bool:
        """
        Assemble the equation system.

        Parameters:
            time: Current time
            prev_sol: Current solution vectors, handed to the integrand
            new_lhs: Assemble the coefficient matrix as well
            dt: Time step size
            incremental: The unknowns are increments of prev_sol[0], the
                         prescribed values are taken relative to it
        """
        if self.eq_sys is None:
            logger.error("Equation system not initialized")
            return False

        values = self.dirichlet_values(time)
        if values is None:
            return False
        if incremental and prev_sol:
            values = {eq: v - prev_sol[0][eq] for eq, v in values.items()}
        self._bc_values = values

        self.eq_sys.initialize(new_lhs)
        self.problem.dt = dt
        for p, patch in enumerate(self.patches):
            self.problem.primsol = [patch.extract_dofs(v, self.madof) for v in prev_sol]
            if not self.extract_patch_dependencies(self.problem, self.patches, p):
                return False
            if not patch.integrate(self.problem, self.eq_sys, time):
                logger.error("Integration failed for patch %d", p + 1)
                return False

            for pindx, face, integrand in self._neumann:
                if pindx != p:
                    continue
                integrand.primsol = self.problem.primsol
                integrand.dt = dt
                if not patch.integrate_boundary(integrand, face, self.eq_sys, time):
                    logger.error("Boundary integration failed on face %d of patch %d",
                                 face, p + 1)
                    return False

        return self.eq_sys.finalize()

    def _apply_dirichlet(self):
        K = self.eq_sys.K
        rhs = self.eq_sys.rhs[0]
        if not self._bc_values:
            return K, rhs.copy()

        fixed = np.array(sorted(self._bc_values), dtype=int)
        g = np.array([self._bc_values[eq] for eq in fixed])

        rhs = rhs - K[:, fixed] @ g
        rhs[fixed] = g

        free = np.ones(self.n_dofs)
        free[fixed] = 0.0
        D = sparse.diags(free)
        K = (D @ K @ D + sparse.diags(1.0 - free)).tocsr()
        return K, rhs

    def solve_system(self) -> Optional[np.ndarray]:
        """Solve the assembled system with the Dirichlet conditions applied."""
        if self.eq_sys is None or self.eq_sys.K is None:
            logger.error("No assembled coefficient matrix")
            return None
        K, rhs = self._apply_dirichlet()
        sol = solve_sparse(K, rhs)
        if sol is None:
            logger.error("Singular equation system")
            return None
        logger.debug("Solution norm %g", np.linalg.norm(sol))
        return sol

    def get_rhs_vector(self, idx: int = 0, copy: bool = False) -> Optional[np.ndarray]:
        if self.eq_sys is None or idx >= len(self.eq_sys.rhs):
            return None
        vec = self.eq_sys.rhs[idx]
        return vec.copy() if copy else vec

    def add_to_rhs_vector(self, idx: int, vec: np.ndarray, scale: float = 1.0) -> bool:
        if self.eq_sys is None or idx >= len(self.eq_sys.rhs):
            logger.error("No right-hand side vector %d", idx)
            return False
        self.eq_sys.rhs[idx] += scale * vec
        return True

    def update_configuration(self, sol: np.ndarray) -> bool:
        """Called with the current displacement after each correction."""
        return True

    def solve_static(self, time: float = 0.0) -> Optional[np.ndarray]:
        """Assemble and solve a linear static problem."""
        self.set_mode(SolutionMode.STATIC)
        if not self.init_system():
            return None
        if not self.assemble_system(time):
            return None
        return self.solve_system()

    # --- Post-processing -----------------------------------------------------

    def solution_norms(self, sol: np.ndarray, norm: NormIntegrand,
                       time: float = 0.0) -> Optional[np.ndarray]:
        """
        Integrate the norm quantities of a solution over all patches.

        Returns:
            The summed values of norm.n_norms() quantities, or None
        """
        total = GlobalSum(norm.n_norms())
        total.initialize()
        for p, patch in enumerate(self.patches):
            norm.problem.primsol = [patch.extract_dofs(sol, self.madof)]
            if not self.extract_patch_dependencies(norm.problem, self.patches, p):
                return None
            total.tag = p
            if not patch.integrate(norm, total, time):
                logger.error("Norm integration failed for patch %d", p + 1)
                return None
        return total.values

    def project(self, sol: np.ndarray,
                method: ProjectionMethod = ProjectionMethod.GREVILLE) -> Optional[List]:
        """
        Project the secondary solution of each patch onto its basis.

        Returns:
            One field spline per patch, or None if any projection failed
        """
        mode = self.problem.mode
        self.problem.set_mode(SolutionMode.RECOVERY)
        result = []
        try:
            for p, patch in enumerate(self.patches):
                self.problem.primsol = [patch.extract_dofs(sol, self.madof)]
                if not self.extract_patch_dependencies(self.problem, self.patches, p):
                    return None
                field = project_solution(patch, self.problem, method)
                if field is None:
                    logger.error("Projection failed for patch %d", p + 1)
                    return None
                result.append(field)
        finally:
            self.problem.set_mode(mode)
        return result
