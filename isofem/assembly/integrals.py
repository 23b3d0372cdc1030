"""
Element-level and system-level integral accumulators.

A LocalIntegral is created by the integrand for one element, filled during
the Gauss point loop and then handed to a GlobalIntegral, which adds it to
the system quantities. Local integrals are never kept after assembly.

Global accumulators provided here:
- SystemAssembly: sparse coefficient matrix and one or more right-hand
  side vectors, built from triplets as scipy.sparse matrices
- GlobalSum: element-wise summation of scalar quantities (norms, volumes)
"""

import logging
import threading
import numpy as np
from abc import ABC, abstractmethod
from scipy import sparse
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


class LocalIntegral:
    """Base class of element-level integral quantities."""

    def __init__(self):
        self.vec: List[np.ndarray] = []  # element solution vectors

    def destruct(self):
        """Release element data, called after the element is assembled."""
        self.vec = []


class ElementMatrices(LocalIntegral):
    """
    Element matrices and vectors of a linear or linearized problem.

    Attributes:
        A: Element matrices, A[0] is the coefficient (Newton) matrix
        b: Element right-hand side vectors
        c: Element scalar quantities
        with_lhs: False when only right-hand sides are assembled
    """

    def __init__(self, n_mat: int = 1, n_vec: int = 1, n_dof: int = 0,
                 n_scl: int = 0, with_lhs: bool = True):
        super().__init__()
        self.with_lhs = with_lhs
        self.A = [np.zeros((n_dof, n_dof)) for _ in range(n_mat if with_lhs else 0)]
        self.b = [np.zeros(n_dof) for _ in range(n_vec)]
        self.c = np.zeros(n_scl)

    def resize(self, n_mat: int, n_vec: int, n_dof: int, n_scl: int = 0):
        self.A = [np.zeros((n_dof, n_dof)) for _ in range(n_mat if self.with_lhs else 0)]
        self.b = [np.zeros(n_dof) for _ in range(n_vec)]
        self.c = np.zeros(n_scl)

    def get_newton_matrix(self) -> np.ndarray:
        """The element coefficient matrix."""
        return self.A[0]

    def get_rhs_vector(self) -> np.ndarray:
        """The element right-hand side vector."""
        return self.b[0]


class ElementNorm(LocalIntegral):
    """Element contributions to a set of scalar quantities."""

    def __init__(self, n_values: int):
        super().__init__()
        self.values = np.zeros(n_values)


class GlobalIntegral(ABC):
    """Base class of system-level integral quantities."""

    def initialize(self, new_lhs: bool = True):
        """Reset the accumulated quantities before an integration loop."""

    @abstractmethod
    def assemble(self, elm: LocalIntegral, iel: int, nodes: Sequence[int]) -> bool:
        """
        Add the contributions of one element.

        Parameters:
            elm: Element quantities
            iel: Element index within its patch
            nodes: Global node numbers of the element, in local order
        """

    def finalize(self) -> bool:
        return True


class SystemAssembly(GlobalIntegral):
    """
    Sparse linear system K x = b with several right-hand sides.

    Parameters:
        madof: DOF offsets per global node (length n_nodes + 1), node n owns
               the equations madof[n] to madof[n+1]-1
        n_rhs: Number of right-hand side vectors
    """

    def __init__(self, madof: Sequence[int], n_rhs: int = 1):
        self.madof = np.asarray(madof, dtype=int)
        self.n_dofs = int(self.madof[-1])
        self.n_rhs = n_rhs
        self.new_lhs = True
        self.K: Optional[sparse.csr_matrix] = None
        self.rhs = [np.zeros(self.n_dofs) for _ in range(n_rhs)]
        self._rows: List[np.ndarray] = []
        self._cols: List[np.ndarray] = []
        self._vals: List[np.ndarray] = []
        self._lock = threading.Lock()

    def initialize(self, new_lhs: bool = True):
        self.new_lhs = new_lhs
        if new_lhs:
            self.K = None
            self._rows, self._cols, self._vals = [], [], []
        self.rhs = [np.zeros(self.n_dofs) for _ in range(self.n_rhs)]

    def element_equations(self, nodes: Sequence[int]) -> np.ndarray:
        """Equation numbers of the DOFs of the given global nodes."""
        return np.concatenate([np.arange(self.madof[n], self.madof[n + 1]) for n in nodes])

    def assemble(self, elm: LocalIntegral, iel: int, nodes: Sequence[int]) -> bool:
        if not isinstance(elm, ElementMatrices):
            logger.error("Element %d: expected element matrices, got %s",
                         iel, type(elm).__name__)
            return False

        eqs = self.element_equations(nodes)
        n = len(eqs)

        with self._lock:
            if self.new_lhs and elm.with_lhs and elm.A:
                Ke = elm.get_newton_matrix()
                if Ke.shape != (n, n):
                    logger.error("Element %d: matrix of shape %s does not match %d DOFs",
                                 iel, Ke.shape, n)
                    return False
                self._rows.append(np.repeat(eqs, n))
                self._cols.append(np.tile(eqs, n))
                self._vals.append(Ke.ravel())

            if elm.b:
                be = elm.get_rhs_vector()
                if len(be) != n:
                    logger.error("Element %d: vector of length %d does not match %d DOFs",
                                 iel, len(be), n)
                    return False
                np.add.at(self.rhs[0], eqs, be)
                for k in range(1, min(self.n_rhs, len(elm.b))):
                    np.add.at(self.rhs[k], eqs, elm.b[k])

        return True

    def finalize(self) -> bool:
        if self.new_lhs:
            if self._vals:
                rows = np.concatenate(self._rows)
                cols = np.concatenate(self._cols)
                vals = np.concatenate(self._vals)
            else:
                rows = cols = np.zeros(0, dtype=int)
                vals = np.zeros(0)
            self.K = sparse.csr_matrix((vals, (rows, cols)),
                                       shape=(self.n_dofs, self.n_dofs))
        return True


class GlobalSum(GlobalIntegral):
    """
    Sum of element scalar quantities.

    Attributes:
        values: Accumulated sums
        element_values: Per-element contributions, keyed by (patch tag, element)
    """

    def __init__(self, n_values: int, keep_elements: bool = False, tag: int = 0):
        self.values = np.zeros(n_values)
        self.keep_elements = keep_elements
        self.tag = tag
        self.element_values = {}
        self._lock = threading.Lock()

    def initialize(self, new_lhs: bool = True):
        self.values[:] = 0.0
        self.element_values = {}

    def assemble(self, elm: LocalIntegral, iel: int, nodes: Sequence[int]) -> bool:
        if isinstance(elm, ElementNorm):
            contrib = elm.values
        elif isinstance(elm, ElementMatrices):
            contrib = elm.c
        else:
            logger.error("Element %d: no scalar quantities in %s", iel, type(elm).__name__)
            return False

        if len(contrib) != len(self.values):
            logger.error("Element %d: %d scalar values, expected %d",
                         iel, len(contrib), len(self.values))
            return False

        with self._lock:
            self.values += contrib
            if self.keep_elements:
                self.element_values[(self.tag, iel)] = np.array(contrib)
        return True
