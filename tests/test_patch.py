"""
Unit tests for the patch abstraction: topology, refinement, constraints
and patch-level vectors.
"""

import pytest
import numpy as np
from numpy.testing import assert_almost_equal, assert_array_almost_equal

from isofem.assembly.structured import StructuredPatch
from isofem.assembly.unstructured import UnstructuredPatch
from isofem.geometry.lrspline import LRSpline
from isofem.geometry.primitives import make_line, make_unit_square, make_box
from isofem.io.config import MixedBasisConfig


def square_patch(p=2, n=2, **kwargs):
    patch = StructuredPatch(make_unit_square(p=p, n_elem_u=n, n_elem_v=n), **kwargs)
    assert patch.generate_fem_topology()
    return patch


class TestStructuredTopology:
    """Tests for element connectivity and node numbering."""

    def test_variant_tags(self):
        patch = square_patch()
        assert patch.n_dim == 2
        assert patch.nsd == 2
        assert patch.structured
        assert not patch.mixed

    def test_sizes(self):
        """Test node and element counts of a biquadratic 2x2 patch."""
        patch = square_patch()

        assert patch.n_nodes == 16
        assert patch.n_elements == 4
        assert patch.n_dofs() == 16
        assert all(len(nodes) == 9 for nodes in patch.mnpc)
        assert_array_almost_equal(patch.mlgn, np.arange(16))

    def test_renumber_nodes(self):
        patch = square_patch()
        patch.renumber_nodes(10)
        assert patch.mlgn[0] == 10
        assert patch.mlgn[-1] == 25

    def test_support(self):
        """Test supports and extended supports of nodes."""
        patch = square_patch(p=2, n=4)

        assert patch.support(0).tolist() == [0]
        assert len(patch.extended_support(0)) == 9
        centre = patch.geometry.flat_index((3, 3))
        assert set(patch.support(centre).tolist()) <= set(patch.extended_support(centre).tolist())

    def test_coordinates(self):
        patch = square_patch(p=1, n=2)

        assert patch.get_element_coordinates(0).shape == (4, 2)
        assert patch.get_nodal_coordinates().shape == (9, 2)
        assert_array_almost_equal(patch.get_coord(4), [0.5, 0.5])

    def test_update_coords(self):
        """Test that nodal displacements move the geometry."""
        patch = square_patch(p=1, n=1)
        assert patch.update_coords(np.tile([1.0, 2.0], 4))
        assert_array_almost_equal(patch.get_coord(0), [1.0, 2.0])
        assert not patch.update_coords(np.zeros(3))

    def test_find_element(self):
        patch = square_patch()
        assert patch.find_element((0.75, 0.25)) == 1
        assert patch.find_element((1.5, 0.25)) == -1

    def test_compute_fe(self):
        """Test finite element data at a point of the unit square."""
        patch = square_patch()
        fe, X = patch.compute_fe(3, (0.75, 0.6))

        assert_array_almost_equal(X, [0.75, 0.6])
        assert_almost_equal(fe.detJxW, 1.0)
        assert_almost_equal(np.sum(fe.N), 1.0)
        assert fe.dNdX.shape == (9, 2)

    def test_clear(self):
        patch = square_patch()
        patch.clear(retain_geometry=True)
        assert not patch.has_topology
        assert patch.spline is not None

        patch.clear()
        assert patch.spline is None
        assert not patch.generate_fem_topology()


class TestStructuredRefinement:
    """Tests for knot refinement and order elevation."""

    def test_refine_clears_topology(self):
        """Test that refinement invalidates the topology."""
        patch = square_patch()
        assert patch.refine(0, [0.5])

        assert not patch.has_topology
        assert patch.n_elements == 8
        assert patch.generate_fem_topology()
        assert patch.n_nodes == 24

    def test_refine_invalid_positions(self):
        """Test that relative positions must be strictly inside (0,1)."""
        patch = square_patch()
        assert not patch.refine(0, [0.0])
        assert not patch.refine(0, [1.0])
        assert not patch.refine(2, [0.5])
        assert patch.n_elements == 4

    def test_uniform_refine(self):
        patch = square_patch()
        assert patch.uniform_refine(1, 2)
        assert patch.n_elements == 12

    def test_raise_order(self):
        """Test that order elevation keeps the elements."""
        patch = square_patch()
        assert patch.raise_order(1, 0)

        assert patch.geometry.orders == (4, 3)
        assert patch.n_elements == 4
        assert not patch.raise_order(1)

    def test_refine_elements_not_available(self):
        patch = square_patch()
        assert not patch.refine_elements([0])

    def test_greville_parameters(self):
        """Test one Greville parameter per basis function, non-decreasing."""
        patch = square_patch(p=3, n=3)
        for d in range(2):
            g = patch.get_greville_parameters(d)
            assert len(g) == patch.geometry.n_basis_per_dir[d]
            assert np.all(np.diff(g) >= 0.0)
        assert patch.get_greville_parameters(2) is None
        assert patch.get_greville_parameters(0, basis=2) is None
        assert patch.get_greville_parameters(0, basis=0) is None


class TestConstraints:
    """Tests for Dirichlet constraint marking."""

    def test_constrain_face(self):
        """Test that a face constrains its boundary nodes."""
        patch = square_patch()
        assert patch.constrain_face(-1)
        assert sorted(n for n, c in patch.dirichlet) == [0, 4, 8, 12]
        assert set(patch.dirichlet.values()) == {0}

        assert patch.constrain_face(2, code=7)
        assert patch.dirichlet[(13, 1)] == 7

    def test_constrain_face_invalid_direction(self):
        patch = square_patch()
        assert not patch.constrain_face(3)
        assert not patch.constrain_face(0)
        assert patch.dirichlet == {}

    def test_invalid_basis(self):
        """Test that an unknown basis is rejected by every constraint method."""
        patch = square_patch()
        assert not patch.constrain_face(-1, basis=2)
        assert not patch.constrain_face(-1, basis=0)
        assert not patch.constrain_corner(-1, -1, basis=2)
        assert not patch.constrain_node(0.5, 0.5, basis=-1)
        assert patch.dirichlet == {}

        box = StructuredPatch(make_box(p=1, n_elem=(1, 1, 1)))
        assert not box.constrain_edge(-1, -2, basis=3)
        assert box.dirichlet == {}

    def test_dof_components(self):
        """Test that dof digits are limited to the number of fields."""
        patch = StructuredPatch(make_unit_square(p=1), n_fields=2)

        assert patch.dof_components(123) == [1, 2]
        assert patch.dof_components(2) == [2]
        assert patch.constrain_face(1, dof=2)
        assert all(c == 2 for _, c in patch.dirichlet)
        assert not patch.constrain_face(1, dof=3)

    def test_constrain_corner(self):
        patch = square_patch()
        assert patch.constrain_corner(1, -1)
        assert list(patch.dirichlet) == [(3, 1)]
        assert not patch.constrain_corner(1)

    def test_constrain_node(self):
        """Test that relative parameters are resolved to the nearest node."""
        patch = square_patch(p=1, n=2)
        assert patch.constrain_node(0.5, 0.5)
        assert list(patch.dirichlet) == [(4, 1)]

        assert patch.constrain_node(1.0, 0.0)
        assert (2, 1) in patch.dirichlet
        assert not patch.constrain_node(1.5, 0.0)
        assert not patch.constrain_node(0.5)

    def test_constrain_edge(self):
        """Test edges of a 3D patch and rejection in 2D."""
        box = StructuredPatch(make_box(p=1, n_elem=(1, 1, 1)))
        assert box.constrain_edge(-1, -2)
        assert sorted(n for n, _ in box.dirichlet) == [0, 4]
        assert not box.constrain_edge(-1, 1)

        patch = square_patch()
        assert not patch.constrain_edge(-1, -2)

    def test_end_point_of_line(self):
        patch = StructuredPatch(make_line(p=2, n_elem=3))
        assert patch.constrain_face(1)
        assert list(patch.dirichlet) == [(4, 1)]


class TestPatchVectors:
    """Tests for transfers between system and patch vectors."""

    def test_extract_inject_node_vec(self):
        """Test nodal vectors with two components per node."""
        patch = square_patch(p=1, n=1)
        patch.renumber_nodes(2)
        glob = np.arange(12.0)

        loc = patch.extract_node_vec(glob, 2)
        assert_array_almost_equal(loc, np.arange(4.0, 12.0))

        out = np.zeros(12)
        assert patch.inject_node_vec(loc, out, 2)
        assert_array_almost_equal(out[4:], loc)
        assert not patch.inject_node_vec(loc[:3], out, 2)

    def test_extract_inject_dofs(self):
        """Test system vectors with variable DOFs per node."""
        patch = square_patch(p=1, n=1)
        madof = np.array([0, 1, 3, 4, 6])
        glob = np.arange(6.0)

        loc = patch.extract_dofs(glob, madof)
        assert_array_almost_equal(loc, glob)

        out = np.zeros(6)
        assert patch.inject_dofs(loc, out, madof)
        assert_array_almost_equal(out, glob)
        assert not patch.inject_dofs(loc[:4], out, madof)


class TestMixedPatch:
    """Tests for patches with two solution bases."""

    def test_default_bases(self):
        """Test that basis 1 is the order-raised geometry basis."""
        patch = StructuredPatch(make_unit_square(p=1, n_elem_u=2, n_elem_v=2), n_fields=(2, 1))
        assert patch.generate_fem_topology()

        assert patch.mixed
        assert patch.n_basis(1) == 25
        assert patch.n_basis(2) == 9
        assert patch.n_nodes == 34
        assert patch.n_dofs() == 59
        assert patch.geo_basis == 1
        assert patch.node_offset(2) == 25
        assert all(len(n) == 9 + 4 for n in patch.mnpc)
        assert_array_almost_equal(patch.node_fields()[[0, 24, 25, 33]], [2, 2, 1, 1])

    def test_smooth_basis1(self):
        cfg = MixedBasisConfig(use_cp_minus1=True)
        patch = StructuredPatch(make_unit_square(p=1, n_elem_u=2, n_elem_v=2),
                                n_fields=(1, 1), mixed_config=cfg)
        assert patch.n_basis(1) == 16

    def test_low_order_basis1_and_geometry(self):
        """Test the swapped basis and the geometry basis selection."""
        cfg = MixedBasisConfig(use_low_order_basis1=True, geo_uses_basis1=True)
        patch = StructuredPatch(make_unit_square(p=1, n_elem_u=2, n_elem_v=2),
                                n_fields=(1, 1), mixed_config=cfg)

        assert patch.n_basis(1) == 9
        assert patch.n_basis(2) == 25
        assert patch.geo_basis == 0
        assert patch.geometry.orders == (2, 2)

    def test_mixed_finite_element(self):
        """Test that both bases are evaluated at a point."""
        patch = StructuredPatch(make_unit_square(p=1, n_elem_u=2, n_elem_v=2), n_fields=(1, 1))
        assert patch.generate_fem_topology()
        fe, X = patch.compute_fe(0, (0.2, 0.3))

        assert len(fe.N) == 9
        assert len(fe.N2) == 4
        assert_almost_equal(np.sum(fe.N), 1.0)
        assert_almost_equal(np.sum(fe.N2), 1.0)
        assert_array_almost_equal(X, [0.2, 0.3])

    def test_constrain_basis2(self):
        patch = StructuredPatch(make_unit_square(p=1, n_elem_u=2, n_elem_v=2), n_fields=(1, 1))
        assert patch.constrain_face(-2, basis=2)
        assert sorted(n for n, _ in patch.dirichlet) == [25, 26, 27]

    def test_too_many_bases(self):
        with pytest.raises(ValueError):
            StructuredPatch(make_unit_square(p=1), n_fields=(1, 1, 1))


class TestUnstructuredPatch:
    """Tests for LR B-spline patches."""

    def test_matches_structured(self):
        """Test that an unrefined LR patch has the tensor topology."""
        s = make_unit_square(p=2, n_elem_u=3, n_elem_v=2)
        lr = UnstructuredPatch(s)
        ts = StructuredPatch(s)
        assert lr.generate_fem_topology()
        assert ts.generate_fem_topology()

        assert not lr.structured
        assert lr.n_nodes == ts.n_nodes
        assert lr.n_elements == ts.n_elements
        for face in (-1, 1, -2, 2):
            assert sorted(lr.boundary_nodes([face]).tolist()) == \
                sorted(ts.boundary_nodes([face]).tolist())

    def test_local_refinement(self):
        """Test local refinement and the stale topology."""
        patch = UnstructuredPatch(make_unit_square(p=2, n_elem_u=4, n_elem_v=4))
        assert patch.generate_fem_topology()
        assert patch.refine_elements([0])

        assert not patch.has_topology
        assert patch.n_elements > 16
        assert patch.generate_fem_topology()
        assert not patch.raise_order(1, 1)

    def test_global_refinement_and_order(self):
        patch = UnstructuredPatch(make_unit_square(p=2, n_elem_u=2, n_elem_v=2))
        assert patch.raise_order(1, 1)
        assert patch.geometry.orders == (4, 4)
        assert patch.refine(0, [0.5])
        assert patch.n_elements == 8

    def test_find_node_and_element(self):
        patch = UnstructuredPatch(make_unit_square(p=1, n_elem_u=2, n_elem_v=2))
        assert patch.generate_fem_topology()

        assert_array_almost_equal(patch.get_coord(patch.find_node((0.5, 1.0))), [0.5, 1.0])
        assert patch.find_element((2.0, 0.0)) == -1

    def test_mixed_lr(self):
        """Test mixed LR patches and the local refinement restriction."""
        s = make_unit_square(p=1, n_elem_u=2, n_elem_v=2)
        patch = UnstructuredPatch(s, n_fields=(1, 1))
        assert patch.generate_fem_topology()

        assert patch.n_basis(1) == 25
        assert patch.n_basis(2) == 9
        assert not patch.refine_elements([0])
        assert patch.refine(1, [0.5])
        assert patch.generate_fem_topology()
        assert patch.n_basis(2) == 15

    def test_mixed_lr_needs_tensor_spline(self):
        lr = LRSpline.from_spline(make_unit_square(p=1))
        with pytest.raises(ValueError):
            UnstructuredPatch(lr, n_fields=(1, 1))
