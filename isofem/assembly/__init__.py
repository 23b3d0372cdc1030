"""
Assembly module for isofem.

Provides:
1. Patches: StructuredPatch (tensor-product splines) and UnstructuredPatch
   (LR B-splines), both with single or mixed bases
2. The integrand contract and the element/global integral accumulators
3. Recovery of secondary solutions (Greville interpolation, SCR, L2)

Usage:
    from isofem.assembly import StructuredPatch, SystemAssembly

    patch = StructuredPatch(surface)
    patch.generate_fem_topology()
    system = SystemAssembly(np.arange(patch.n_nodes + 1))
    patch.integrate(integrand, system)
"""

from .integrals import (
    LocalIntegral,
    ElementMatrices,
    ElementNorm,
    GlobalIntegral,
    SystemAssembly,
    GlobalSum,
)
from .integrand import Integrand, NormIntegrand, SolutionMode, IntegrandType
from .newmark_mats import NewmarkMats
from .structured import StructuredPatch
from .unstructured import UnstructuredPatch
from .fields import SplineField

__all__ = [
    # Integrals
    'LocalIntegral',
    'ElementMatrices',
    'ElementNorm',
    'GlobalIntegral',
    'SystemAssembly',
    'GlobalSum',
    # Integrands
    'Integrand',
    'NormIntegrand',
    'SolutionMode',
    'IntegrandType',
    'NewmarkMats',
    # Patches
    'StructuredPatch',
    'UnstructuredPatch',
    'SplineField',
]
