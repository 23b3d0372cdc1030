"""
Element integrand contract.

A physics problem plugs into the assembly loop and the recovery engine by
implementing an Integrand. The assembly loop calls, per element:

    elm = integrand.get_local_integral(nen, iel)
    integrand.init_element(mnpc, elm)           # element solution vectors
    for each Gauss point:
        integrand.evaluate(elm, fe, X)          # fill element matrices
    integrand.finalize_element(elm)
    glb_int.assemble(elm, iel, global_nodes)

The recovery engine calls eval_sol(fe, X, mnpc) at sampling points to get
the secondary solution (e.g. fluxes or stresses).

Solution vectors (primsol) are patch-level nodal vectors with npv
components per node, set by the simulator before each integration loop.
For mixed patches the basis 1 nodes come first, followed by the basis 2
nodes, with fields_per_basis() components per node of each basis.
"""

import logging
import numpy as np
from abc import ABC, abstractmethod
from enum import Enum, IntFlag
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .finite_element import FiniteElement
from .integrals import LocalIntegral, ElementMatrices, ElementNorm

logger = logging.getLogger(__name__)


class SolutionMode(Enum):
    """What the integrand is asked to compute."""
    INIT = 0
    STATIC = 1
    DYNAMIC = 2
    VIBRATION = 3
    RHS_ONLY = 4
    RECOVERY = 5


class IntegrandType(IntFlag):
    """Capabilities requested from the assembly loop."""
    STANDARD = 0
    SECOND_DERIVATIVES = 1


def extract_element_vector(vec: np.ndarray, mnpc: Sequence[int], ncomp: int,
                           offset: int = 0) -> np.ndarray:
    """Element part of a nodal vector, nodes in local order."""
    idx = offset + (ncomp * np.asarray(mnpc, dtype=int))[:, None] + np.arange(ncomp)[None, :]
    return np.asarray(vec)[idx.ravel()]


class Integrand(ABC):
    """
    Base class of element integrands.

    Attributes:
        nsd: Number of space dimensions
        npv: Number of primary unknowns per node
        mode: Current solution mode
        primsol: Patch-level primary solution vectors
        int_prm: Time integration parameters set by the time integrator
        time, dt: Current time and step size
    """

    def __init__(self, nsd: int, npv: int = 1):
        self.nsd = nsd
        self.npv = npv
        self.mode = SolutionMode.INIT
        self.primsol: List[np.ndarray] = []
        self.int_prm = np.zeros(4)
        self.time = 0.0
        self.dt = 0.0
        self._vectors: Dict[str, np.ndarray] = {}
        self._fields: Dict[str, Any] = {}

    # --- Configuration -------------------------------------------------------

    @property
    def integrand_type(self) -> IntegrandType:
        return IntegrandType.STANDARD

    def set_mode(self, mode: SolutionMode):
        self.mode = mode

    def set_integration_prm(self, i: int, prm: float):
        if i >= len(self.int_prm):
            self.int_prm = np.concatenate([self.int_prm, np.zeros(i + 1 - len(self.int_prm))])
        self.int_prm[i] = prm

    def get_integration_prm(self, i: int) -> float:
        return float(self.int_prm[i]) if i < len(self.int_prm) else 0.0

    def mixed_formulation(self) -> bool:
        return False

    def derivative_order(self) -> int:
        """Highest derivative of the primary solution in the secondary solution."""
        return 1

    def get_no_fields(self, fld: int = 2) -> int:
        """
        Number of solution components.

        Parameters:
            fld: 1 for primary, 2 for secondary solution
        """
        return self.npv if fld == 1 else 0

    def fields_per_basis(self) -> Tuple[int, ...]:
        """Number of primary unknowns per node of each solution basis."""
        return (self.npv,)

    def get_field1_name(self, i: int, prefix: Optional[str] = None) -> str:
        name = f"u{i + 1}" if self.npv > 1 else "u"
        return f"{prefix} {name}" if prefix else name

    def get_field2_name(self, i: int, prefix: Optional[str] = None) -> str:
        name = f"s{i + 1}"
        return f"{prefix} {name}" if prefix else name

    # --- Named vectors and fields from dependent simulators -----------------

    def set_named_vector(self, name: str, vec: np.ndarray):
        self._vectors[name] = vec

    def get_named_vector(self, name: str) -> Optional[np.ndarray]:
        return self._vectors.get(name)

    def has_named_vector(self, name: str) -> bool:
        return name in self._vectors

    def set_named_field(self, name: str, field):
        self._fields[name] = field

    def get_named_field(self, name: str):
        return self._fields.get(name)

    # --- Integration loop hooks ----------------------------------------------

    def init_integration(self, time: float = 0.0):
        """Called once before each integration loop."""
        self.time = time

    def init_result_points(self, time: float = 0.0):
        """Called once before the secondary solution is sampled."""
        self.time = time

    def get_local_integral(self, nen: int, iel: int, neumann: bool = False) -> LocalIntegral:
        """New element accumulator for an element with nen basis functions."""
        with_lhs = not neumann and self.mode is not SolutionMode.RHS_ONLY
        return ElementMatrices(1, 1, nen * self.npv, with_lhs=with_lhs)

    def get_local_integral_mixed(self, nen1: int, nen2: int, iel: int,
                                 neumann: bool = False) -> LocalIntegral:
        nf1, nf2 = self.fields_per_basis()
        ndof = nen1 * nf1 + nen2 * nf2
        with_lhs = not neumann and self.mode is not SolutionMode.RHS_ONLY
        return ElementMatrices(1, 1, ndof, with_lhs=with_lhs)

    def init_element(self, mnpc: Sequence[int], elm: LocalIntegral,
                     X0: Optional[np.ndarray] = None, n_pt: int = 0) -> bool:
        """
        Extract the element solution vectors.

        Parameters:
            mnpc: Patch-local node numbers of the element
            elm: Element accumulator
            X0: Element center, for integrands that need it
            n_pt: Number of integration points in the element
        """
        elm.vec = [extract_element_vector(v, mnpc, self.npv) for v in self.primsol]
        return True

    def init_element_mixed(self, mnpc1: Sequence[int], mnpc2: Sequence[int],
                           n1: int, elm: LocalIntegral) -> bool:
        """
        Extract element vectors of a mixed element.

        Parameters:
            mnpc1: Element nodes of basis 1
            mnpc2: Element nodes of basis 2, numbered within basis 2
            n1: Number of basis 1 nodes on the patch
            elm: Element accumulator
        """
        nf1, nf2 = self.fields_per_basis()
        elm.vec = [np.concatenate([extract_element_vector(v, mnpc1, nf1),
                                   extract_element_vector(v, mnpc2, nf2, nf1 * n1)])
                   for v in self.primsol]
        return True

    def init_element_bou(self, mnpc: Sequence[int], elm: LocalIntegral) -> bool:
        return self.init_element(mnpc, elm)

    @abstractmethod
    def evaluate(self, elm: LocalIntegral, fe: FiniteElement, X: np.ndarray) -> bool:
        """Add the contributions of one interior integration point."""

    def evaluate_bou(self, elm: LocalIntegral, fe: FiniteElement, X: np.ndarray,
                     normal: np.ndarray) -> bool:
        """Add the contributions of one boundary integration point."""
        logger.error("%s has no boundary integrand", type(self).__name__)
        return False

    def finalize_element(self, elm: LocalIntegral) -> bool:
        return True

    def eval_sol(self, fe: FiniteElement, X: np.ndarray,
                 mnpc: Sequence[int]) -> Optional[np.ndarray]:
        """
        Secondary solution at a point.

        Returns:
            Array of get_no_fields(2) values, or None on failure
        """
        logger.error("%s has no secondary solution", type(self).__name__)
        return None


class NormIntegrand(Integrand):
    """
    Integrand computing scalar quantities (norms) of a problem solution.

    The problem integrand provides the solution vectors and the secondary
    solution; subclasses add their values to ElementNorm.values.
    """

    def __init__(self, problem: Integrand):
        super().__init__(problem.nsd, problem.npv)
        self.problem = problem

    @property
    def integrand_type(self) -> IntegrandType:
        return self.problem.integrand_type

    @abstractmethod
    def n_norms(self) -> int:
        """Number of scalar quantities computed."""

    def get_local_integral(self, nen: int, iel: int, neumann: bool = False) -> LocalIntegral:
        return ElementNorm(self.n_norms())

    def init_element(self, mnpc: Sequence[int], elm: LocalIntegral,
                     X0: Optional[np.ndarray] = None, n_pt: int = 0) -> bool:
        return self.problem.init_element(mnpc, elm, X0, n_pt)

    def init_integration(self, time: float = 0.0):
        super().init_integration(time)
        self.problem.init_integration(time)
