"""
Unit tests for LR B-splines.
"""

import pytest
import numpy as np
from numpy.testing import assert_almost_equal, assert_array_almost_equal

from isofem.geometry.lrspline import LRSpline
from isofem.geometry.primitives import make_unit_square, make_rectangle, make_quarter_annulus


def sample_points(n=6):
    t = np.linspace(0.0, 1.0, n)
    return [np.array([u, v]) for v in t for u in t]


@pytest.fixture
def lr_square():
    return LRSpline.from_spline(make_rectangle(p=2, n_elem_u=4, n_elem_v=4,
                                               x_range=(0.0, 2.0)))


class TestLRFromTensor:
    """Tests for LR B-splines created from tensor-product splines."""

    def test_sizes(self, lr_square):
        """Test function and element counts."""
        assert lr_square.n_basis == 36
        assert lr_square.n_elements == 16
        assert lr_square.orders == (3, 3)
        assert lr_square.n_dim_physical == 2
        assert len(lr_square.meshlines) == 6

    def test_same_basis_values(self):
        """Test that the basis equals the tensor-product basis."""
        s = make_unit_square(p=2, n_elem_u=3, n_elem_v=2)
        lr = LRSpline.from_spline(s)

        for u in sample_points():
            bd_s = s.compute_basis(u, 1)
            bd_lr = lr.compute_basis(u, 1)
            ref = dict(zip(bd_s.nodes.tolist(), bd_s.values))
            for n, value in zip(bd_lr.nodes.tolist(), bd_lr.values):
                assert_almost_equal(value, ref.get(n, 0.0))

    def test_same_geometry(self, lr_square):
        for u in sample_points():
            assert_array_almost_equal(lr_square.eval_point(u), [2.0 * u[0], u[1]])

    def test_rational_not_supported(self):
        """Test that rational splines are rejected."""
        with pytest.raises(ValueError):
            LRSpline.from_spline(make_quarter_annulus())


class TestLRTopology:
    """Tests for element and support queries."""

    def test_element_containing(self, lr_square):
        """Test element lookup, interior breakpoints belong to the upper element."""
        iel = lr_square.element_containing([0.25, 0.0])
        assert lr_square.element_bounds(iel)[0] == (0.25, 0.5)
        assert lr_square.element_containing([1.0, 1.0]) >= 0
        assert lr_square.element_containing([1.2, 0.5]) == -1

    def test_support_and_extended_support(self, lr_square):
        """Test that the extended support contains the support."""
        for i in range(lr_square.n_basis):
            supp = set(lr_square.support(i).tolist())
            ext = set(lr_square.extended_support(i).tolist())
            assert supp
            assert supp <= ext

        # Corner function: one element, its extended support 3x3 elements
        assert len(lr_square.support(0)) == 1
        assert len(lr_square.extended_support(0)) == 9

    def test_boundary_elements(self, lr_square):
        assert len(lr_square.boundary_elements(0, 0)) == 4
        assert len(lr_square.boundary_elements(1, 1)) == 4

    def test_greville_points(self, lr_square):
        g = lr_square.greville_points()
        assert g.shape == (36, 2)
        assert_array_almost_equal(g.min(axis=0), [0.0, 0.0])
        assert_array_almost_equal(g.max(axis=0), [1.0, 1.0])


class TestLRRefinement:
    """Tests for meshline insertion and local refinement."""

    def test_global_line_equals_knot_insertion(self):
        """Test that a full-domain line gives the refined tensor basis."""
        s = make_unit_square(p=2, n_elem_u=2, n_elem_v=2)
        lr = LRSpline.from_spline(s)
        assert lr.insert_line(0, 0.25)

        ref = s.copy()
        ref.insert_knots(0, [0.25])
        assert lr.n_basis == ref.n_control_points
        assert lr.n_elements == ref.n_elements

    def test_invalid_lines(self, lr_square):
        """Test that invalid lines are rejected without changes."""
        n = lr_square.n_basis
        assert not lr_square.insert_line(2, 0.5)
        assert not lr_square.insert_line(0, 1.0)
        assert not lr_square.insert_line(0, 0.5, [0.0, 0.5], [1.0, 0.5])
        assert lr_square.n_basis == n

    def test_local_refinement(self, lr_square):
        """Test that local refinement keeps the geometry and partition of unity."""
        before = lr_square.copy()
        assert lr_square.refine_elements([0, 5])

        assert lr_square.n_elements > before.n_elements
        assert lr_square.n_basis > before.n_basis
        for u in sample_points():
            bd = lr_square.compute_basis(u, 1)
            assert_almost_equal(np.sum(bd.values), 1.0)
            assert_array_almost_equal(bd.first.sum(axis=0), [0.0, 0.0])
            assert_array_almost_equal(lr_square.eval_point(u), before.eval_point(u))

    def test_refine_invalid_element(self, lr_square):
        assert not lr_square.refine_elements([100])

    def test_copy_with_coefs(self, lr_square):
        """Test a scalar field on the LR basis."""
        field = lr_square.copy_with_coefs(np.ones(lr_square.n_basis))

        assert field.n_dim_physical == 1
        assert lr_square.n_dim_physical == 2
        assert_array_almost_equal(field.eval_point([0.3, 0.8]), [1.0])

    def test_set_control_points_size(self, lr_square):
        with pytest.raises(ValueError):
            lr_square.set_control_points(np.zeros((3, 2)))
