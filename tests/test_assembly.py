"""
Tests for the patch integration loops and the global accumulators.
"""

import pytest
import numpy as np
from numpy.testing import assert_almost_equal, assert_array_almost_equal

from isofem.assembly.integrals import ElementMatrices, ElementNorm, GlobalSum, SystemAssembly
from isofem.assembly.integrand import Integrand
from isofem.assembly.structured import StructuredPatch
from isofem.assembly.unstructured import UnstructuredPatch
from isofem.discretization.knot_vector import make_uniform_knot_vector
from isofem.geometry.primitives import make_rectangle, make_unit_square
from isofem.geometry.spline import SplineGeometry
from isofem.io.config import IntegrationConfig
from isofem.solver.poisson import Poisson


class MixedMassIntegrand(Integrand):
    """Mass matrix over both bases of a mixed patch."""

    def fields_per_basis(self):
        return (1, 1)

    def evaluate(self, elm, fe, X):
        N = np.concatenate([fe.N, fe.N2])
        elm.A[0] += np.outer(N, N) * fe.detJxW
        return True


def assemble(patch, integrand, **kwargs):
    if not patch.has_topology:
        assert patch.generate_fem_topology()
    madof = np.concatenate([[0], np.cumsum(patch.node_fields())])
    system = SystemAssembly(madof)
    system.initialize()
    assert patch.integrate(integrand, system, **kwargs)
    assert system.finalize()
    return system


class TestGlobalSum:
    """Tests for scalar quantities summed over the elements."""

    def test_area(self, mass_integrand):
        """Test the area of a rectangle and the element contributions."""
        patch = StructuredPatch(make_rectangle(p=2, n_elem_u=2, n_elem_v=3,
                                               x_range=(0.0, 2.0), y_range=(0.0, 3.0)))
        assert patch.generate_fem_topology()
        total = GlobalSum(1, keep_elements=True)
        total.initialize()

        assert patch.integrate(mass_integrand, total)
        assert_almost_equal(total.values[0], 6.0)
        assert len(total.element_values) == 6
        assert_almost_equal(total.element_values[(0, 0)][0], 1.0)

    def test_degenerate_element_is_skipped(self, mass_integrand):
        """Test a line whose middle element has zero physical length."""
        kv = make_uniform_knot_vector(3, 1)
        line = SplineGeometry([kv], np.array([[0.0], [1.0], [1.0], [2.0]]))
        patch = StructuredPatch(line)
        assert patch.generate_fem_topology()

        total = GlobalSum(1, keep_elements=True)
        total.initialize()
        assert patch.integrate(mass_integrand, total)

        assert_almost_equal(total.values[0], 2.0)
        assert_almost_equal(total.element_values[(0, 1)][0], 0.0)

    def test_wrong_number_of_values(self):
        total = GlobalSum(2)
        assert not total.assemble(ElementNorm(3), 0, [0])
        assert not total.assemble(ElementMatrices(1, 1, 2, n_scl=1), 0, [0, 1])


class TestSystemAssembly:
    """Tests for the sparse system matrix and right-hand sides."""

    def test_mass_matrix(self, mass_integrand):
        """Test that the mass matrix entries sum to the area."""
        patch = StructuredPatch(make_unit_square(p=2, n_elem_u=3, n_elem_v=2))
        system = assemble(patch, mass_integrand)

        M = system.K.toarray()
        assert M.shape == (20, 20)
        assert_array_almost_equal(M, M.T)
        assert_almost_equal(M.sum(), 1.0)
        assert_almost_equal(system.rhs[0].sum(), 1.0)

    def test_element_order_does_not_matter(self, mass_integrand):
        patch = StructuredPatch(make_unit_square(p=2, n_elem_u=3, n_elem_v=3))
        forward = assemble(patch, mass_integrand)
        backward = assemble(patch, mass_integrand, elements=reversed(range(9)))

        assert_array_almost_equal(forward.K.toarray(), backward.K.toarray())
        assert_array_almost_equal(forward.rhs[0], backward.rhs[0])

    def test_threaded_matches_serial(self, mass_integrand):
        """Test that parallel element evaluation gives the serial result."""
        s = make_unit_square(p=3, n_elem_u=4, n_elem_v=4)
        serial = assemble(StructuredPatch(s.copy()), mass_integrand)
        threaded = assemble(StructuredPatch(s.copy(), integration=IntegrationConfig(n_threads=4)),
                            mass_integrand)

        assert_array_almost_equal(serial.K.toarray(), threaded.K.toarray())
        assert_array_almost_equal(serial.rhs[0], threaded.rhs[0])

    def test_mixed_mass_matrix(self):
        """Test the block layout of a mixed element matrix."""
        patch = StructuredPatch(make_unit_square(p=1, n_elem_u=2, n_elem_v=2), n_fields=(1, 1))
        system = assemble(patch, MixedMassIntegrand(nsd=2))

        M = system.K.toarray()
        assert M.shape == (34, 34)
        assert_almost_equal(M.sum(), 4.0)
        assert_almost_equal(M[:25, :25].sum(), 1.0)
        assert_almost_equal(M[25:, 25:].sum(), 1.0)
        assert_array_almost_equal(M, M.T)

    def test_lr_mass_matrix(self, mass_integrand):
        """Test assembly over a locally refined LR patch."""
        patch = UnstructuredPatch(make_unit_square(p=2, n_elem_u=3, n_elem_v=3))
        assert patch.refine_elements([4])
        system = assemble(patch, mass_integrand)

        assert_almost_equal(system.K.toarray().sum(), 1.0)
        assert_almost_equal(system.rhs[0].sum(), 1.0)

    def test_shape_mismatch(self):
        """Test that element quantities must match the element DOFs."""
        system = SystemAssembly(np.arange(5))
        system.initialize()
        assert not system.assemble(ElementMatrices(1, 1, 3), 0, [0, 1])
        assert not system.assemble(ElementNorm(1), 0, [0])

    def test_rhs_only(self, mass_integrand):
        """Test that the matrix is kept when only the right-hand side is rebuilt."""
        patch = StructuredPatch(make_unit_square(p=1, n_elem_u=2, n_elem_v=2))
        system = assemble(patch, mass_integrand)
        K = system.K

        system.initialize(new_lhs=False)
        assert patch.integrate(mass_integrand, system)
        assert system.finalize()
        assert system.K is K
        assert_almost_equal(system.rhs[0].sum(), 1.0)

    def test_requires_topology(self, mass_integrand):
        patch = StructuredPatch(make_unit_square(p=1))
        total = GlobalSum(1)
        assert not patch.integrate(mass_integrand, total)


class TestBoundaryIntegration:
    """Tests for integration over patch faces."""

    def test_uniform_flux(self):
        """Test that a unit outward flux removes the face length from the load."""
        patch = StructuredPatch(make_rectangle(p=2, n_elem_u=2, n_elem_v=2,
                                               x_range=(0.0, 2.0), y_range=(0.0, 3.0)))
        assert patch.generate_fem_topology()
        system = SystemAssembly(np.arange(patch.n_nodes + 1))
        system.initialize()

        problem = Poisson(nsd=2, flux=lambda x, y: 1.0)
        assert patch.integrate_boundary(problem, 1, system)
        assert_almost_equal(system.rhs[0].sum(), -3.0)
        assert patch.integrate_boundary(problem, -2, system)
        assert_almost_equal(system.rhs[0].sum(), -5.0)

    def test_invalid_face(self):
        patch = StructuredPatch(make_unit_square(p=1))
        assert patch.generate_fem_topology()
        system = SystemAssembly(np.arange(patch.n_nodes + 1))
        system.initialize()
        assert not patch.integrate_boundary(Poisson(nsd=2), 3, system)
