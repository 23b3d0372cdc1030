"""
Patch abstraction.

A patch owns a spline geometry and one or two solution bases over it, the
element connectivity (mnpc) and the node numbering. One interface covers
all variants, identified by explicit tags:

    n_dim       1, 2 or 3 parametric directions
    structured  tensor-product spline (True) or LR B-spline (False)
    mixed       one or two solution bases

Concrete patches (StructuredPatch, UnstructuredPatch) only implement the
spline-specific parts: refinement, basis construction and boundary node
lookup. Assembly, boundary integration, constraints and coordinate access
live here.

Refinement and order elevation invalidate the topology;
generate_fem_topology() must be called before the next integration.

Node numbering of mixed patches: the nodes of basis 1 come first,
followed by the nodes of basis 2 offset by the size of basis 1.

TODO: Add node merging across patch interfaces for multi-patch models
"""

import logging
import numpy as np
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

from .basis import extract_basis, inverse_jacobian, jacobian, hessian, boundary_measure
from .finite_element import FiniteElement, MixedFiniteElement
from .integrals import GlobalIntegral, LocalIntegral
from .integrand import Integrand, IntegrandType
from ..io.config import MixedBasisConfig, IntegrationConfig
from ..quadrature.gauss import GaussQuadrature, gauss_legendre_nd

logger = logging.getLogger(__name__)


class PatchBase(ABC):
    """
    Single spline patch with finite element topology.

    Attributes:
        spline: Geometry spline the bases are derived from
        bases: Solution bases (one, or two for mixed patches)
        n_fields: Number of unknowns per node of each basis
        mnpc: Patch-local node numbers of each element
        mlgn: Global node number of each patch node
        dirichlet: Constrained DOFs, {(node, component): code}
    """

    structured = True

    def __init__(self, spline, n_fields: Sequence[int] = (1,),
                 mixed_config: Optional[MixedBasisConfig] = None,
                 integration: Optional[IntegrationConfig] = None):
        if isinstance(n_fields, int):
            n_fields = (n_fields,)
        if not 1 <= len(n_fields) <= 2:
            raise ValueError(f"A patch has one or two bases, got {len(n_fields)}")

        self.spline = spline
        self.n_fields = tuple(int(n) for n in n_fields)
        self.mixed_config = mixed_config or MixedBasisConfig()
        self.integration = integration or IntegrationConfig()

        self.bases: List = []
        self.geo_basis = 0
        self.mnpc: List[np.ndarray] = []
        self.mlgn = np.zeros(0, dtype=int)
        self.dirichlet: Dict[Tuple[int, int], int] = {}
        self._elem_nodes: List[List[np.ndarray]] = []
        self._node_elements: List[np.ndarray] = []

        self._update_bases()

    # --- Variant tags and sizes ----------------------------------------------

    @property
    def n_dim(self) -> int:
        return self.spline.n_dim_parametric

    @property
    def nsd(self) -> int:
        return self.spline.n_dim_physical

    @property
    def mixed(self) -> bool:
        return len(self.n_fields) > 1

    @property
    def geometry(self):
        """The basis whose coefficients are the geometry control points."""
        return self.bases[self.geo_basis]

    @property
    def n_elements(self) -> int:
        return self.geometry.n_elements

    @property
    def n_nodes(self) -> int:
        return sum(b.n_control_points for b in self.bases)

    def n_basis(self, basis: int = 1) -> int:
        """Number of basis functions (nodes) of basis 1 or 2."""
        return self.bases[basis - 1].n_control_points

    def node_offset(self, basis: int = 1) -> int:
        return sum(b.n_control_points for b in self.bases[:basis - 1])

    def n_dofs(self) -> int:
        return sum(nf * b.n_control_points for nf, b in zip(self.n_fields, self.bases))

    def node_fields(self) -> np.ndarray:
        """Number of unknowns of every patch node."""
        return np.concatenate([np.full(b.n_control_points, nf, dtype=int)
                               for nf, b in zip(self.n_fields, self.bases)])

    @property
    def has_topology(self) -> bool:
        return len(self.mnpc) > 0 and len(self.mnpc) == self.n_elements

    # --- Spline-specific parts -----------------------------------------------

    @abstractmethod
    def _build_bases(self) -> Optional[List]:
        """Solution bases derived from the current spline, None on failure."""

    @abstractmethod
    def _refine_knots(self, direction: int, relative_positions: Sequence[float]) -> bool:
        pass

    @abstractmethod
    def _raise_order(self, r: Sequence[int]) -> bool:
        pass

    @abstractmethod
    def boundary_nodes(self, signed_dirs: Sequence[int], basis: int = 1) -> np.ndarray:
        """
        Nodes of a boundary entity, numbered within the basis.

        Parameters:
            signed_dirs: One entry per fixed direction, -(d+1) for the start
                         and +(d+1) for the end of parametric direction d
        """

    @abstractmethod
    def find_node(self, relative_params: Sequence[float], basis: int = 1) -> int:
        """Node closest to a relative parametric position, within the basis."""

    @abstractmethod
    def find_element(self, u: Sequence[float]) -> int:
        """Element containing u, -1 if outside."""

    # --- Refinement ----------------------------------------------------------

    def _update_bases(self) -> bool:
        bases = self._build_bases()
        if bases is None:
            return False
        self.bases = bases
        if self.mixed and self.mixed_config.geo_uses_basis1:
            self.geo_basis = 0
        elif self.mixed:
            self.geo_basis = 1
        else:
            self.geo_basis = 0
        self.mnpc = []
        self._elem_nodes = []
        self._node_elements = []
        return True

    def _check_direction(self, direction: int) -> bool:
        if not 0 <= direction < self.n_dim:
            logger.error("Invalid parametric direction %d for a %dD patch", direction, self.n_dim)
            return False
        return True

    def refine(self, direction: int, relative_positions: Sequence[float]) -> bool:
        """
        Insert knots at relative positions within every knot span.

        Parameters:
            direction: Parametric direction (0-based)
            relative_positions: Values in the open interval (0,1)
        """
        if not self._check_direction(direction):
            return False
        rel = [float(x) for x in relative_positions]
        if any(not 0.0 < x < 1.0 for x in rel):
            logger.error("Relative knot positions must be in (0,1), got %s", rel)
            return False
        if not rel:
            return True
        if not self._refine_knots(direction, sorted(rel)):
            return False
        return self._update_bases()

    def uniform_refine(self, direction: int, n_insert: int) -> bool:
        """Insert n_insert equidistant knots in every knot span."""
        if n_insert < 0:
            logger.error("Negative number of knots to insert: %d", n_insert)
            return False
        return self.refine(direction, [k / (n_insert + 1.0) for k in range(1, n_insert + 1)])

    def raise_order(self, *r: int) -> bool:
        """Raise the order r[d] times in each direction, keeping continuity."""
        if len(r) != self.n_dim or any(x < 0 for x in r):
            logger.error("Invalid order increments %s for a %dD patch", r, self.n_dim)
            return False
        if not any(r):
            return True
        if not self._raise_order(r):
            return False
        return self._update_bases()

    def refine_elements(self, elements: Sequence[int]) -> bool:
        logger.error("Local refinement is only available for LR B-spline patches")
        return False

    def clear(self, retain_geometry: bool = False):
        """Release the topology, and the spline unless retain_geometry."""
        self.mnpc = []
        self._elem_nodes = []
        self._node_elements = []
        self.mlgn = np.zeros(0, dtype=int)
        self.dirichlet = {}
        if not retain_geometry:
            self.spline = None
            self.bases = []

    # --- Topology ------------------------------------------------------------

    def generate_fem_topology(self) -> bool:
        """Build the element connectivity and node numbering."""
        if self.spline is None or not self.bases:
            logger.error("Patch has no spline basis")
            return False

        n_el = self.geometry.n_elements
        if any(b.n_elements != n_el for b in self.bases):
            logger.error("Bases of a mixed patch have different element counts %s",
                         [b.n_elements for b in self.bases])
            return False

        offsets = [self.node_offset(b + 1) for b in range(len(self.bases))]
        elem_nodes = []
        mnpc = []
        for iel in range(n_el):
            nodes = [np.asarray(b.element_nodes(iel), dtype=int) for b in self.bases]
            elem_nodes.append(nodes)
            mnpc.append(np.concatenate([n + off for n, off in zip(nodes, offsets)]))

        n_nodes = self.n_nodes
        used = np.zeros(n_nodes, dtype=bool)
        for iel, nodes in enumerate(mnpc):
            if len(nodes) == 0 or nodes.min() < 0 or nodes.max() >= n_nodes:
                logger.error("Element %d has invalid nodes", iel)
                return False
            used[nodes] = True
        if not used.all():
            logger.error("%d nodes are not connected to any element", int((~used).sum()))
            return False

        node_elements: List[List[int]] = [[] for _ in range(n_nodes)]
        for iel, nodes in enumerate(mnpc):
            for n in nodes:
                node_elements[n].append(iel)

        self._elem_nodes = elem_nodes
        self.mnpc = mnpc
        self._node_elements = [np.array(e, dtype=int) for e in node_elements]
        if len(self.mlgn) != n_nodes:
            self.mlgn = np.arange(n_nodes)
        logger.debug("Patch topology: %d elements, %d nodes", n_el, n_nodes)
        return True

    def renumber_nodes(self, start: int):
        """Global node numbers start, start+1, ... for the patch nodes."""
        self.mlgn = start + np.arange(self.n_nodes)

    def element_bounds(self, iel: int) -> Tuple[Tuple[float, float], ...]:
        return self.geometry.element_bounds(iel)

    def element_nodes(self, iel: int, basis: int = 1) -> np.ndarray:
        """Nodes of one basis on an element, numbered within that basis."""
        return self._elem_nodes[iel][basis - 1]

    def support(self, node: int) -> np.ndarray:
        """Elements in the support of a patch node."""
        return self._node_elements[node]

    def extended_support(self, node: int) -> np.ndarray:
        """
        Union of the supports of all nodes of the same basis whose support
        overlaps the support of the given node.
        """
        basis = 0 if node < self.node_offset(2) or not self.mixed else 1
        elems = set()
        for iel in self._node_elements[node]:
            for n in self._elem_nodes[iel][basis]:
                elems.update(self._node_elements[n + self.node_offset(basis + 1)].tolist())
        return np.array(sorted(elems), dtype=int)

    # --- Coordinates ---------------------------------------------------------

    def get_element_coordinates(self, iel: int) -> np.ndarray:
        """Geometry control points of an element, shape (nen, nsd)."""
        nodes = self.geometry.element_nodes(iel)
        return self.geometry.control_points[nodes]

    def get_nodal_coordinates(self) -> np.ndarray:
        """Coordinates of all patch nodes, shape (n_nodes, nsd)."""
        return np.vstack([b.control_points for b in self.bases])

    def get_coord(self, node: int) -> np.ndarray:
        return self.get_nodal_coordinates()[node]

    def update_coords(self, displ: np.ndarray) -> bool:
        """
        Add nodal displacements to the geometry.

        Parameters:
            displ: Displacements of the geometry basis nodes, either flat
                   with nsd components per node or of shape (n, nsd)
        """
        geo = self.geometry
        displ = np.asarray(displ, dtype=np.float64)
        n = geo.n_control_points
        if displ.size != n * self.nsd:
            logger.error("Displacement vector of size %d does not match %d nodes x %d",
                         displ.size, n, self.nsd)
            return False
        cps = geo.control_points + displ.reshape(n, self.nsd)
        if self.structured:
            geo.control_points = cps
        else:
            geo.set_control_points(cps)
        return True

    def get_greville_parameters(self, direction: int, basis: int = 1) -> Optional[np.ndarray]:
        if not self._check_direction(direction) or not self._check_basis(basis):
            return None
        return self.bases[basis - 1].greville_parameters(direction)

    def greville_points(self, basis: int = 1) -> np.ndarray:
        return self.bases[basis - 1].greville_points()

    # --- Patch-level vectors -------------------------------------------------

    def _basis_nodes(self, basis: int) -> np.ndarray:
        if basis == 0:
            return np.arange(self.n_nodes)
        return self.node_offset(basis) + np.arange(self.n_basis(basis))

    def extract_node_vec(self, glob_vec: np.ndarray, n_comp: int, basis: int = 0) -> np.ndarray:
        """
        Patch-local nodal vector from a global vector with n_comp values
        per global node.

        Parameters:
            glob_vec: Global nodal vector
            n_comp: Number of components per node
            basis: Extract the nodes of this basis only (0 for all nodes)
        """
        g = self.mlgn[self._basis_nodes(basis)]
        idx = (n_comp * g)[:, None] + np.arange(n_comp)[None, :]
        return np.asarray(glob_vec)[idx.ravel()]

    def inject_node_vec(self, loc_vec: np.ndarray, glob_vec: np.ndarray, n_comp: int,
                        basis: int = 0) -> bool:
        """Copy a patch-local nodal vector into a global nodal vector."""
        g = self.mlgn[self._basis_nodes(basis)]
        idx = ((n_comp * g)[:, None] + np.arange(n_comp)[None, :]).ravel()
        if len(loc_vec) != len(idx):
            logger.error("Patch vector of length %d, expected %d", len(loc_vec), len(idx))
            return False
        glob_vec[idx] = loc_vec
        return True

    def extract_dofs(self, glob_vec: np.ndarray, madof: Sequence[int]) -> np.ndarray:
        """
        Patch-local solution vector from a system vector.

        Parameters:
            glob_vec: System vector
            madof: Offset of the first equation of each global node
        """
        madof = np.asarray(madof, dtype=int)
        return np.concatenate([glob_vec[madof[g]:madof[g + 1]] for g in self.mlgn])

    def inject_dofs(self, loc_vec: np.ndarray, glob_vec: np.ndarray,
                    madof: Sequence[int]) -> bool:
        """Copy a patch-local solution vector into a system vector."""
        madof = np.asarray(madof, dtype=int)
        k = 0
        for g in self.mlgn:
            n = madof[g + 1] - madof[g]
            if k + n > len(loc_vec):
                logger.error("Patch vector of length %d is too short", len(loc_vec))
                return False
            glob_vec[madof[g]:madof[g + 1]] = loc_vec[k:k + n]
            k += n
        return True

    # --- Dirichlet constraints -----------------------------------------------

    def dof_components(self, dof: int, basis: int = 1) -> List[int]:
        nf = self.n_fields[basis - 1]
        return sorted({int(c) for c in str(abs(int(dof))) if 1 <= int(c) <= nf})

    def _check_basis(self, basis: int) -> bool:
        if not 1 <= basis <= len(self.bases):
            logger.error("Invalid basis %d, the patch has %d", basis, len(self.bases))
            return False
        return True

    def _constrain(self, nodes: Sequence[int], dof: int, code: int, basis: int) -> bool:
        comps = self.dof_components(dof, basis)
        if not comps:
            logger.error("No valid components in dof=%d (%d fields)", dof, self.n_fields[basis - 1])
            return False
        offset = self.node_offset(basis)
        for n in nodes:
            for c in comps:
                self.dirichlet[(int(n) + offset, c)] = code
        return True

    def _check_signed_dirs(self, signed_dirs: Sequence[int]) -> bool:
        dirs = [abs(int(s)) for s in signed_dirs]
        if any(not 1 <= d <= self.n_dim for d in dirs) or len(set(dirs)) != len(dirs):
            logger.error("Invalid boundary specification %s for a %dD patch",
                         list(signed_dirs), self.n_dim)
            return False
        return True

    def constrain_face(self, direction: int, dof: int = 123, code: int = 0,
                       basis: int = 1) -> bool:
        """
        Constrain the DOFs of a patch boundary (end point, edge or face).

        Parameters:
            direction: -(d+1) for the start, +(d+1) for the end of direction d
            dof: Components to constrain, e.g. 12 for components 1 and 2
            code: Boundary condition code (0 is homogeneous)
            basis: Basis whose nodes are constrained
        """
        if not self._check_basis(basis) or not self._check_signed_dirs([direction]):
            return False
        return self._constrain(self.boundary_nodes([direction], basis), dof, code, basis)

    def constrain_edge(self, *signed_dirs: int, dof: int = 123, code: int = 0,
                       basis: int = 1) -> bool:
        """Constrain the nodes of the edge where two patch faces meet (3D)."""
        if self.n_dim != 3 or len(signed_dirs) != 2:
            logger.error("An edge is given by two faces of a 3D patch, got %s for %dD",
                         list(signed_dirs), self.n_dim)
            return False
        if not self._check_basis(basis) or not self._check_signed_dirs(signed_dirs):
            return False
        return self._constrain(self.boundary_nodes(signed_dirs, basis), dof, code, basis)

    def constrain_corner(self, *signs: int, dof: int = 123, code: int = 0,
                         basis: int = 1) -> bool:
        """
        Constrain a corner node. The sign of each entry selects the start
        (negative) or end (positive) of that direction.
        """
        if len(signs) != self.n_dim or any(s == 0 for s in signs):
            logger.error("A corner needs %d non-zero signs, got %s", self.n_dim, list(signs))
            return False
        if not self._check_basis(basis):
            return False
        signed = [(d + 1) if s > 0 else -(d + 1) for d, s in enumerate(signs)]
        return self._constrain(self.boundary_nodes(signed, basis), dof, code, basis)

    def constrain_node(self, *relative_params: float, dof: int = 123, code: int = 0,
                       basis: int = 1) -> bool:
        """Constrain the node nearest to a relative parametric position in [0,1]^d."""
        if len(relative_params) != self.n_dim:
            logger.error("Need %d relative parameters, got %d", self.n_dim, len(relative_params))
            return False
        if any(not 0.0 <= r <= 1.0 for r in relative_params):
            logger.error("Relative parameters must be in [0,1], got %s", list(relative_params))
            return False
        if not self._check_basis(basis):
            return False
        return self._constrain([self.find_node(relative_params, basis)], dof, code, basis)

    # --- Evaluation ----------------------------------------------------------

    def _evaluate(self, iel: int, u: np.ndarray, n_ders: int = 1):
        """
        Basis functions and geometry mapping at a point of an element.

        Returns:
            (fe, X, J) where fe.detJxW holds detJ (0.0 if degenerate)
        """
        n_ders = max(n_ders, 1)
        data = [extract_basis(b.compute_basis(u, n_ders, iel), n_ders) for b in self.bases]

        N, dNdu, d2Ndu2 = data[self.geo_basis]
        Xnod = self.get_element_coordinates(iel)
        detJ, J, dNdX_geo = jacobian(Xnod, dNdu)
        X = N @ Xnod

        _, Jinv = inverse_jacobian(J) if detJ != 0.0 else (0.0, None)
        dNdX = []
        for k, (Nb, dNb, _) in enumerate(data):
            if k == self.geo_basis:
                dNdX.append(dNdX_geo)
            elif Jinv is None:
                dNdX.append(np.zeros((len(Nb), self.nsd)))
            else:
                dNdX.append(dNb @ Jinv)

        if self.mixed:
            fe = MixedFiniteElement(iel, u, data[0][0], dNdX[0], detJ, Xnod,
                                    N2=data[1][0], dN2dX=dNdX[1])
        else:
            fe = FiniteElement(iel, u, N, dNdX[0], detJ, Xnod)
        if n_ders >= 2 and detJ != 0.0 and not self.mixed:
            fe.d2NdX2 = hessian(Xnod, dNdX[0], d2Ndu2, J)
        return fe, X, J

    def compute_fe(self, iel: int, u: Sequence[float], n_ders: int = 1):
        """
        Finite element data at a parameter point of an element.

        Returns:
            (fe, X) with fe.detJxW = detJ (0.0 at a degenerate point)
        """
        fe, X, _ = self._evaluate(iel, np.asarray(u, dtype=np.float64), n_ders)
        return fe, X

    def gauss_rule(self, n_gauss: Optional[int] = None) -> GaussQuadrature:
        n = n_gauss or self.integration.n_gauss
        if n:
            return GaussQuadrature((n,) * self.n_dim)
        orders = np.max([b.orders for b in self.bases], axis=0)
        return GaussQuadrature(tuple(int(o) for o in orders))

    def _n_ders(self, integrand: Integrand) -> int:
        return 2 if integrand.integrand_type & IntegrandType.SECOND_DERIVATIVES else 1

    def _init_element(self, integrand: Integrand, iel: int, neumann: bool = False,
                      n_pt: int = 0) -> Optional[LocalIntegral]:
        if self.mixed:
            nodes1, nodes2 = self._elem_nodes[iel]
            elm = integrand.get_local_integral_mixed(len(nodes1), len(nodes2), iel, neumann)
            ok = integrand.init_element_mixed(nodes1, nodes2, self.n_basis(1), elm)
        else:
            elm = integrand.get_local_integral(len(self.mnpc[iel]), iel, neumann)
            if neumann:
                ok = integrand.init_element_bou(self.mnpc[iel], elm)
            else:
                X0 = self.get_element_coordinates(iel).mean(axis=0)
                ok = integrand.init_element(self.mnpc[iel], elm, X0, n_pt)
        return elm if ok else None

    def _integrate_element(self, integrand: Integrand, iel: int, quad: GaussQuadrature,
                           n_ders: int) -> Optional[LocalIntegral]:
        bounds = self.element_bounds(iel)
        dA = float(np.prod([hi - lo for lo, hi in bounds]))
        if dA <= 0.0:
            logger.error("Element %d has non-positive parametric measure %g", iel, dA)
            return None

        elm = self._init_element(integrand, iel, n_pt=quad.n_points)
        if elm is None:
            logger.error("Failed to initialize element %d", iel)
            return None

        for u, w in zip(quad.map_to_element(bounds), quad.weights):
            fe, X, _ = self._evaluate(iel, u, n_ders)
            fe.detJxW = abs(fe.detJxW) * dA * w
            if fe.detJxW == 0.0:
                logger.debug("Skipping degenerate point %s in element %d", u, iel)
                continue
            if not integrand.evaluate(elm, fe, X):
                logger.error("Integrand failed at %s in element %d", u, iel)
                return None

        if not integrand.finalize_element(elm):
            return None
        return elm

    def integrate(self, integrand: Integrand, glb_int: GlobalIntegral, time: float = 0.0,
                  n_gauss: Optional[int] = None,
                  elements: Optional[Sequence[int]] = None) -> bool:
        """
        Evaluate the integrand over the patch elements and assemble.

        Parameters:
            integrand: Element integrand
            glb_int: Global accumulator
            time: Current time
            n_gauss: Gauss points per direction, default order p+1
            elements: Elements to visit and their order, default all

        Elements are evaluated in parallel when integration.n_threads > 1;
        their contributions are always assembled in the given order.
        """
        if not self.has_topology:
            logger.error("Patch topology is not generated or out of date")
            return False

        quad = self.gauss_rule(n_gauss)
        n_ders = self._n_ders(integrand)
        integrand.init_integration(time)
        elements = range(self.n_elements) if elements is None else list(elements)

        def work(iel):
            return self._integrate_element(integrand, iel, quad, n_ders)

        if self.integration.n_threads > 1:
            with ThreadPoolExecutor(max_workers=self.integration.n_threads) as pool:
                results = pool.map(work, elements)
                return self._assemble_all(glb_int, elements, results)
        return self._assemble_all(glb_int, elements, (work(iel) for iel in elements))

    def _assemble_all(self, glb_int: GlobalIntegral, elements, results) -> bool:
        for iel, elm in zip(elements, results):
            if elm is None:
                return False
            if not glb_int.assemble(elm, iel, self.mlgn[self.mnpc[iel]]):
                return False
            elm.destruct()
        return True

    def integrate_boundary(self, integrand: Integrand, face: int, glb_int: GlobalIntegral,
                           time: float = 0.0, n_gauss: Optional[int] = None) -> bool:
        """
        Evaluate the boundary integrand over one patch face and assemble.

        Parameters:
            face: -(d+1) for the start, +(d+1) for the end of direction d
        """
        if not self.has_topology:
            logger.error("Patch topology is not generated or out of date")
            return False
        if not self._check_signed_dirs([face]):
            return False
        if self.n_dim > 1 and self.nsd != self.n_dim:
            logger.error("Boundary integration needs nsd == n_dim, got %d and %d",
                         self.nsd, self.n_dim)
            return False

        d = abs(face) - 1
        side = 0 if face < 0 else 1
        others = [k for k in range(self.n_dim) if k != d]
        quad = self.gauss_rule(n_gauss)
        if others:
            pts, wts = gauss_legendre_nd([quad.n_points_per_dir[k] for k in others])
        else:
            pts, wts = np.zeros((1, 0)), np.ones(1)

        n_ders = self._n_ders(integrand)
        integrand.init_integration(time)

        for iel in self.geometry.boundary_elements(d, side):
            bounds = self.element_bounds(iel)
            dS = float(np.prod([bounds[k][1] - bounds[k][0] for k in others]))
            elm = self._init_element(integrand, iel, neumann=True)
            if elm is None:
                return False

            for xi, w in zip(pts, wts):
                u = np.empty(self.n_dim)
                u[d] = bounds[d][side]
                for k, x in zip(others, xi):
                    u[k] = bounds[k][0] + x * (bounds[k][1] - bounds[k][0])
                fe, X, J = self._evaluate(iel, u, n_ders)
                measure, normal = boundary_measure(J, d, side)
                fe.detJxW = measure * dS * w
                if fe.detJxW == 0.0:
                    continue
                fe.normal = normal
                if not integrand.evaluate_bou(elm, fe, X, normal):
                    return False

            if not integrand.finalize_element(elm):
                return False
            if not glb_int.assemble(elm, iel, self.mlgn[self.mnpc[iel]]):
                return False
            elm.destruct()
        return True

    def eval_secondary(self, integrand: Integrand, u: Sequence[float],
                       iel: Optional[int] = None) -> Optional[np.ndarray]:
        """
        Secondary solution at a parameter point.

        A degenerate point is still evaluated; the physical derivatives are
        zero there.
        """
        if not self.has_topology:
            logger.error("Patch topology is not generated or out of date")
            return None
        u = np.asarray(u, dtype=np.float64)
        if iel is None:
            iel = self.find_element(u)
            if iel < 0:
                logger.error("Point %s is outside the patch", u)
                return None
        fe, X, _ = self._evaluate(iel, u, integrand.derivative_order())
        return integrand.eval_sol(fe, X, self.mnpc[iel])
