"""
Unit tests for knot vectors, knot insertion and order elevation.
"""

import pytest
import numpy as np
from numpy.testing import assert_almost_equal, assert_array_almost_equal

from isofem.discretization.knot_vector import (
    KnotVector, make_open_knot_vector, make_uniform_knot_vector,
    compute_multiplicity, insert_knots, relative_refinement_knots,
    uniform_refinement_knots, elevate_knot_vector, smooth_elevated_knot_vector,
)
from isofem.geometry.bspline import collocation_matrix


class TestKnotVector:
    """Tests for KnotVector construction and queries."""

    def test_open_knot_vector(self):
        """Test an open uniform knot vector."""
        kv = make_open_knot_vector(n_basis=5, degree=2)

        assert_array_almost_equal(kv.knots, [0, 0, 0, 1/3, 2/3, 1, 1, 1])
        assert kv.n_basis == 5
        assert kv.order == 3
        assert kv.n_elements == 3
        assert kv.domain == (0.0, 1.0)

    def test_uniform_knot_vector(self):
        """Test that n_elements equal spans are created."""
        kv = make_uniform_knot_vector(4, 3, domain=(1.0, 3.0))

        assert kv.n_elements == 4
        assert kv.n_basis == 7
        assert_array_almost_equal(kv.unique_knots, [1.0, 1.5, 2.0, 2.5, 3.0])

    def test_repeated_interior_knot(self):
        """Test that a repeated knot does not create an empty element."""
        kv = KnotVector(np.array([0, 0, 0, 0.5, 0.5, 1, 1, 1]), 2)

        assert kv.n_elements == 2
        assert kv.elements == [(0.0, 0.5), (0.5, 1.0)]
        assert compute_multiplicity(kv, 0.5) == 2

    def test_invalid_knot_vectors(self):
        """Test validation of the knot sequence."""
        with pytest.raises(ValueError):
            KnotVector(np.array([0, 0, 1]), 1)
        with pytest.raises(ValueError):
            KnotVector(np.array([0, 0, 1, 0.5, 1, 1]), 1)
        with pytest.raises(ValueError):
            KnotVector(np.array([0, 0, 1, 1]), -1)

    def test_find_element(self):
        """Test element lookup including interior breakpoints and the end."""
        kv = make_uniform_knot_vector(4, 2)

        assert kv.find_element(0.0) == 0
        assert kv.find_element(0.25) == 1
        assert kv.find_element(0.6) == 2
        assert kv.find_element(1.0) == 3
        with pytest.raises(ValueError):
            kv.find_element(1.5)

    def test_active_basis_indices(self):
        """Test that p+1 functions are active on each element."""
        kv = make_uniform_knot_vector(3, 2)
        for e in range(kv.n_elements):
            assert_array_almost_equal(kv.active_basis_indices(e), np.arange(e, e + 3))

    def test_greville_abscissae(self):
        """Test Greville abscissae of a quadratic basis."""
        kv = make_uniform_knot_vector(2, 2)
        g = kv.greville_abscissae()

        assert len(g) == kv.n_basis
        assert_array_almost_equal(g, [0.0, 0.25, 0.75, 1.0])
        assert np.all(np.diff(g) >= 0.0)

    def test_greville_degree_zero(self):
        """Test that degree 0 uses span midpoints."""
        kv = KnotVector(np.array([0.0, 0.5, 1.0]), 0)
        assert_array_almost_equal(kv.greville_abscissae(), [0.25, 0.75])


class TestKnotInsertion:
    """Tests for knot insertion matrices."""

    def test_insertion_preserves_space(self):
        """Test that old basis functions are reproduced by the refined basis."""
        kv = make_uniform_knot_vector(2, 2)
        new_kv, A = insert_knots(kv, [0.25, 0.6])

        assert new_kv.n_basis == kv.n_basis + 2
        assert A.shape == (new_kv.n_basis, kv.n_basis)

        params = np.linspace(0.0, 1.0, 11)
        B_old = collocation_matrix(kv, params)
        B_new = collocation_matrix(new_kv, params)
        assert_array_almost_equal(B_new @ A, B_old, decimal=13)

    def test_insertion_outside_domain(self):
        """Test that knots on or outside the domain boundary are rejected."""
        kv = make_uniform_knot_vector(2, 1)
        with pytest.raises(ValueError):
            insert_knots(kv, [1.0])

    def test_relative_refinement_knots(self):
        """Test knots placed at relative positions in every span."""
        kv = make_uniform_knot_vector(2, 2)
        knots = relative_refinement_knots(kv, [0.5])
        assert_array_almost_equal(knots, [0.25, 0.75])

        knots = uniform_refinement_knots(kv, 3)
        assert len(knots) == 6
        assert_array_almost_equal(knots[:3], [0.125, 0.25, 0.375])


class TestOrderElevation:
    """Tests for order-elevated knot vectors."""

    def test_elevate_keeps_continuity(self):
        """Test that interior multiplicities grow with the degree."""
        kv = make_uniform_knot_vector(2, 1)
        up = elevate_knot_vector(kv, 1)

        assert up.degree == 2
        assert_array_almost_equal(up.knots, [0, 0, 0, 0.5, 0.5, 1, 1, 1])

    def test_smooth_elevation(self):
        """Test that the smooth variant keeps simple interior knots."""
        kv = make_uniform_knot_vector(2, 1)
        up = smooth_elevated_knot_vector(kv, 1)

        assert up.degree == 2
        assert_array_almost_equal(up.knots, [0, 0, 0, 0.5, 1, 1, 1])

    def test_elevate_zero(self):
        """Test that r=0 returns an equal copy."""
        kv = make_uniform_knot_vector(3, 2)
        up = elevate_knot_vector(kv, 0)
        assert up is not kv
        assert_array_almost_equal(up.knots, kv.knots)

    def test_negative_elevation(self):
        with pytest.raises(ValueError):
            elevate_knot_vector(make_uniform_knot_vector(2, 2), -1)
