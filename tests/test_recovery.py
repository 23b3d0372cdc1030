"""
Tests for the projection of secondary solutions onto the spline basis.
"""

import pytest
import numpy as np
from numpy.testing import assert_almost_equal, assert_array_almost_equal

from isofem.assembly.recovery import (
    ProjectionMethod, face_l2_projection, monomials, project_solution, regular_interpolation,
)
from isofem.assembly.integrand import Integrand
from isofem.assembly.structured import StructuredPatch
from isofem.assembly.unstructured import UnstructuredPatch
from isofem.geometry.primitives import make_box, make_quarter_annulus, make_rectangle, make_unit_square


def square_patch(p=2, n=4):
    patch = StructuredPatch(make_unit_square(p=p, n_elem_u=n, n_elem_v=n))
    assert patch.generate_fem_topology()
    return patch


def assert_reproduces(field, func, points):
    for u in points:
        assert_almost_equal(field.eval_point(u)[0], func(*u))


SAMPLE_POINTS = [(0.1, 0.2), (0.5, 0.5), (0.33, 0.87), (0.95, 0.05)]


class NoSolution(Integrand):
    def evaluate(self, elm, fe, X):
        return True


class TestMonomials:
    """Tests for the local polynomial basis."""

    def test_first_direction_fastest(self):
        x = np.array([[2.0, 3.0]])
        assert_array_almost_equal(monomials(x, (2, 2)), [[1.0, 2.0, 3.0, 6.0]])

    def test_shape(self):
        x = np.random.rand(5, 3)
        assert monomials(x, (3, 2, 2)).shape == (5, 12)


class TestRegularInterpolation:
    """Tests for interpolation at sample points."""

    def test_interpolates_geometry(self):
        """Test that the Greville points of an affine map give its control points."""
        s = make_rectangle(p=3, n_elem_u=3, n_elem_v=2, x_range=(1.0, 2.0))
        result = regular_interpolation(s, s.greville_points(), s.control_points)
        assert_array_almost_equal(result.control_points, s.control_points)

    def test_rational_basis(self):
        s = make_quarter_annulus()
        assert regular_interpolation(s, s.greville_points(), s.control_points) is None

    def test_wrong_number_of_points(self):
        s = make_unit_square(p=2, n_elem_u=2, n_elem_v=2)
        g = s.greville_points()
        assert regular_interpolation(s, g[:-1], g[:-1, 0]) is None


class TestGrevilleProjection:
    """Tests for interpolation of the secondary solution."""

    def test_coordinate_field(self, field_integrand):
        """Test that the x-coordinate field has the geometry x-coordinates."""
        patch = square_patch(p=3, n=3)
        field = project_solution(patch, field_integrand(lambda x, y: x))

        assert_array_almost_equal(field.control_points[:, 0],
                                  patch.geometry.control_points[:, 0])

    def test_idempotent(self, field_integrand):
        """Test that projecting a projected field reproduces it."""
        patch = square_patch()
        first = project_solution(patch, field_integrand(lambda x, y: np.sin(x) * y))
        second = project_solution(
            patch, field_integrand(lambda x, y: first.eval_point((x, y))[0]))

        assert_array_almost_equal(first.control_points, second.control_points)

    def test_vector_field(self, field_integrand):
        patch = square_patch()
        field = project_solution(patch, field_integrand(lambda x, y: (x, 2.0 * y), n_fields=2))
        assert field.control_points.shape == (36, 2)
        assert_array_almost_equal(field.eval_point((0.3, 0.4)), [0.3, 0.8])

    def test_lr_patch(self, field_integrand):
        """Test interpolation on a locally refined basis."""
        patch = UnstructuredPatch(make_unit_square(p=2, n_elem_u=4, n_elem_v=4))
        assert patch.refine_elements([5])
        assert patch.generate_fem_topology()

        func = lambda x, y: x * x + x * y
        field = project_solution(patch, field_integrand(func))
        assert_reproduces(field, func, SAMPLE_POINTS)

    def test_secondary_solution_failure(self):
        """Test that a missing secondary solution fails the projection."""
        patch = square_patch()
        assert project_solution(patch, NoSolution(nsd=2)) is None


class TestSuperconvergentRecovery:
    """Tests for local least-squares recovery."""

    def test_exact_for_bilinear(self, field_integrand):
        func = lambda x, y: 1.0 + 2.0 * x - y + x * y
        patch = square_patch(p=2, n=4)
        field = project_solution(patch, field_integrand(func), ProjectionMethod.SCR)
        assert_reproduces(field, func, SAMPLE_POINTS)

    def test_exact_on_scaled_rectangle(self, field_integrand):
        """Test the fit in physical coordinates of a stretched domain."""
        func = lambda x, y: 3.0 - x + 0.5 * y
        patch = StructuredPatch(make_rectangle(p=2, n_elem_u=3, n_elem_v=3,
                                               x_range=(0.0, 10.0), y_range=(-1.0, 1.0)))
        assert patch.generate_fem_topology()
        field = project_solution(patch, field_integrand(func), ProjectionMethod.SCR)

        for u in SAMPLE_POINTS:
            X = patch.geometry.eval_point(u)
            assert_almost_equal(field.eval_point(u)[0], func(*X))

    def test_order_too_low(self, field_integrand):
        """Test that second derivatives cannot be recovered on a linear basis."""
        patch = square_patch(p=1, n=2)
        integrand = field_integrand(lambda x, y: x)
        integrand.derivative_order = lambda: 2
        assert project_solution(patch, integrand, ProjectionMethod.SCR) is None

    def test_exact_for_full_degree(self, field_integrand):
        """Test a polynomial using every term of the local fit."""
        func = lambda x, y: x * x * y * y + x * x - 3.0 * y * y
        patch = square_patch(p=2, n=4)
        field = project_solution(patch, field_integrand(func), ProjectionMethod.SCR)
        assert_reproduces(field, func, SAMPLE_POINTS)

    def test_high_order_surface(self, field_integrand):
        func = lambda x, y: x ** 5 - x * y ** 4 + 2.0 * y ** 3
        patch = square_patch(p=5, n=6)
        field = project_solution(patch, field_integrand(func), ProjectionMethod.SCR)
        assert field is not None
        assert_reproduces(field, func, SAMPLE_POINTS)

    def test_cubic_box(self, field_integrand):
        """Test recovery on a tricubic volume, whose fit has 27 terms."""
        func = lambda x, y, z: x * y * z + x ** 3
        patch = StructuredPatch(make_box(p=3, n_elem=(2, 2, 2)))
        assert patch.generate_fem_topology()
        field = project_solution(patch, field_integrand(func, nsd=3), ProjectionMethod.SCR)

        assert field is not None
        for u in [(0.1, 0.2, 0.3), (0.5, 0.5, 0.5), (0.9, 0.4, 0.75)]:
            assert_almost_equal(field.eval_point(u)[0], func(*u))

    def test_lr_patch(self, field_integrand):
        """Test recovery over the extended supports of a locally refined basis."""
        patch = UnstructuredPatch(make_unit_square(p=2, n_elem_u=4, n_elem_v=4))
        assert patch.refine_elements([5])
        assert patch.generate_fem_topology()

        func = lambda x, y: x * x * y * y + x * x - 3.0 * y * y
        field = project_solution(patch, field_integrand(func), ProjectionMethod.SCR)
        assert field is not None
        assert_reproduces(field, func, SAMPLE_POINTS)

    def test_singular_local_fit(self, field_integrand):
        """Test that a rank deficient local fit fails the whole projection."""
        # all sample points share the same y-coordinate
        patch = StructuredPatch(make_rectangle(p=2, n_elem_u=2, n_elem_v=2,
                                               y_range=(0.5, 0.5)))
        assert patch.generate_fem_topology()
        assert project_solution(patch, field_integrand(lambda x, y: x),
                                ProjectionMethod.SCR) is None


class TestL2Projection:
    """Tests for the continuous and discrete L2 projections."""

    @pytest.mark.parametrize("method", [ProjectionMethod.GLOBAL_L2, ProjectionMethod.DISCRETE_L2])
    def test_reproduces_quadratic(self, field_integrand, method):
        func = lambda x, y: x * x + y
        patch = square_patch(p=2, n=4)
        field = project_solution(patch, field_integrand(func), method)
        assert_reproduces(field, func, SAMPLE_POINTS)

    def test_mixed_second_basis(self, field_integrand):
        """Test projection onto the low-order basis of a mixed patch."""
        patch = StructuredPatch(make_unit_square(p=1, n_elem_u=2, n_elem_v=2), n_fields=(1, 1))
        assert patch.generate_fem_topology()
        func = lambda x, y: 1.0 + x - 2.0 * y
        field = project_solution(patch, field_integrand(func), ProjectionMethod.GLOBAL_L2, basis=2)

        assert field.n_control_points == 9
        assert_reproduces(field, func, SAMPLE_POINTS)

    def test_requires_topology(self, field_integrand):
        patch = StructuredPatch(make_unit_square(p=2))
        assert project_solution(patch, field_integrand(lambda x, y: x),
                                ProjectionMethod.GLOBAL_L2) is None


class TestFaceProjection:
    """Tests for the boundary projection of prescribed values."""

    def test_linear_function(self):
        """Test that a function in the face space is reproduced at the nodes."""
        patch = square_patch(p=2, n=2)
        nodes, values = face_l2_projection(patch, -1, lambda X, t: 2.0 * X[1] + t, time=1.0)

        assert nodes.tolist() == [0, 4, 8, 12]
        assert values.shape == (4, 1)
        y = patch.geometry.control_points[nodes, 1]
        assert_array_almost_equal(values[:, 0], 2.0 * y + 1.0)

    def test_two_components(self):
        patch = square_patch(p=1, n=2)
        nodes, values = face_l2_projection(patch, 2, lambda X, t: (X[0], -1.0), n_comp=2)

        assert values.shape == (3, 2)
        assert_array_almost_equal(values[:, 0], [0.0, 0.5, 1.0])
        assert_array_almost_equal(values[:, 1], -1.0)
