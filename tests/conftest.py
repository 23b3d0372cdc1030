"""
Pytest configuration and shared fixtures for isofem tests.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add the parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from isofem.assembly.integrand import Integrand


@pytest.fixture
def tolerance():
    """Default tolerance for floating point comparisons."""
    return 1e-12


@pytest.fixture
def loose_tolerance():
    """Looser tolerance for numerical integration tests."""
    return 1e-8


class FieldIntegrand(Integrand):
    """Integrand whose secondary solution is a given function of X."""

    def __init__(self, func, nsd=2, n_fields=1):
        super().__init__(nsd, 1)
        self.func = func
        self.n_fields = n_fields

    def get_no_fields(self, fld=2):
        return 1 if fld == 1 else self.n_fields

    def evaluate(self, elm, fe, X):
        return True

    def eval_sol(self, fe, X, mnpc):
        return np.atleast_1d(self.func(*X))


class MassIntegrand(Integrand):
    """Mass matrix and load of a unit source; records the area in c[0]."""

    def get_local_integral(self, nen, iel, neumann=False):
        elm = super().get_local_integral(nen, iel, neumann)
        elm.c = np.zeros(1)
        return elm

    def evaluate(self, elm, fe, X):
        elm.A[0] += np.outer(fe.N, fe.N) * fe.detJxW
        elm.b[0] += fe.N * fe.detJxW
        elm.c[0] += fe.detJxW
        return True


@pytest.fixture
def field_integrand():
    """Factory for integrands with an analytic secondary solution."""
    return FieldIntegrand


@pytest.fixture
def mass_integrand():
    return MassIntegrand(nsd=2)
