"""
Basis extraction and Jacobian mapping.

The assembly loop works with dense arrays:

    N      (nen,)             basis function values
    dNdu   (nen, npar)        parametric first derivatives
    d2Ndu2 (nen, npar, npar)  parametric second derivatives
    Xnod   (nen, nsd)         element nodal coordinates

The Jacobian of the geometry mapping is J = Xnod^T @ dNdu, shape
(nsd, npar), and physical derivatives follow from

    dNdX = dNdu @ J^-1

For curves and surfaces embedded in a higher-dimensional space
(nsd > npar) the pseudo-inverse (J^T J)^-1 J^T is used and the measure
is sqrt(det(J^T J)).

A degenerate mapping (zero or ill-conditioned Jacobian, e.g. at a
collapsed edge or a pole) is signalled by a zero determinant; the caller
skips that integration point.
"""

import logging
import numpy as np
from typing import Optional, Tuple

from ..geometry.bspline import BasisDerivs

logger = logging.getLogger(__name__)

# Relative size of det(J) below which the mapping is considered singular
DEGENERATE_TOL = 1.0e-12


def extract_basis(derivs: BasisDerivs, n_ders: int = 1):
    """
    Dense basis arrays from a basis evaluation record.

    Parameters:
        derivs: Result of compute_basis of a spline
        n_ders: 0, 1 or 2

    Returns:
        (N, dNdu, d2Ndu2); arrays that were not requested are None
    """
    N = np.array(derivs.values, dtype=np.float64)
    dNdu = d2Ndu2 = None

    if n_ders >= 1:
        if derivs.first is None:
            raise ValueError("Basis evaluation has no first derivatives")
        dNdu = np.array(derivs.first, dtype=np.float64).reshape(len(N), -1)
    if n_ders >= 2:
        if derivs.second is None:
            raise ValueError("Basis evaluation has no second derivatives")
        npar = dNdu.shape[1]
        d2Ndu2 = np.array(derivs.second, dtype=np.float64).reshape(len(N), npar, npar)

    return N, dNdu, d2Ndu2


def inverse_jacobian(J: np.ndarray) -> Tuple[float, Optional[np.ndarray]]:
    """
    Determinant (or surface measure) and (pseudo-)inverse of a Jacobian.

    Parameters:
        J: Jacobian matrix, shape (nsd, npar) with nsd >= npar

    Returns:
        (detJ, Jinv) with Jinv of shape (npar, nsd); (0.0, None) for a
        degenerate mapping
    """
    nsd, npar = J.shape
    if nsd < npar:
        raise ValueError(f"Cannot map {npar} parametric directions into {nsd}D space")

    scale = np.linalg.norm(J) ** npar
    if nsd == npar:
        detJ = float(np.linalg.det(J))
        if abs(detJ) <= DEGENERATE_TOL * scale or scale == 0.0:
            return 0.0, None
        return detJ, np.linalg.inv(J)

    G = J.T @ J
    detG = float(np.linalg.det(G))
    if detG <= (DEGENERATE_TOL * scale) ** 2 or scale == 0.0:
        return 0.0, None
    return float(np.sqrt(detG)), np.linalg.solve(G, J.T)


def jacobian(Xnod: np.ndarray, dNdu: np.ndarray):
    """
    Jacobian of the geometry mapping and physical basis derivatives.

    Parameters:
        Xnod: Element nodal coordinates, shape (nen, nsd)
        dNdu: Parametric basis derivatives, shape (nen, npar)

    Returns:
        (detJ, J, dNdX): detJ is 0.0 for a degenerate point, in which case
        dNdX is all zeros
    """
    J = Xnod.T @ dNdu
    detJ, Jinv = inverse_jacobian(J)
    if Jinv is None:
        return 0.0, J, np.zeros((dNdu.shape[0], Xnod.shape[1]))
    return detJ, J, dNdu @ Jinv


def hessian(Xnod: np.ndarray, dNdX: np.ndarray, d2Ndu2: np.ndarray,
            J: np.ndarray) -> Optional[np.ndarray]:
    """
    Physical second derivatives of the basis functions.

    Uses d2N/du2 = J^T (d2N/dX2) J + sum_i dN/dX_i d2X_i/du2, solved for
    d2N/dX2.

    Returns:
        Array of shape (nen, nsd, nsd), or None for a degenerate mapping
    """
    _, Jinv = inverse_jacobian(J)
    if Jinv is None:
        return None

    H = np.einsum('ni,nab->iab', Xnod, d2Ndu2)
    M = d2Ndu2 - np.einsum('ni,iab->nab', dNdX, H)
    return np.einsum('ai,nab,bj->nij', Jinv, M, Jinv)


def boundary_measure(J: np.ndarray, direction: int, side: int) -> Tuple[float, np.ndarray]:
    """
    Measure and outward unit normal on a patch boundary.

    Parameters:
        J: Jacobian, shape (nsd, npar) with nsd == npar
        direction: Parametric direction normal to the boundary (0-based)
        side: 0 for the start of the domain, 1 for the end

    Returns:
        (dS, normal); dS is 0.0 where the boundary mapping is degenerate
    """
    nsd, npar = J.shape
    sign = 1.0 if side == 1 else -1.0
    orient = 1.0
    if nsd == npar:
        det = np.linalg.det(J)
        orient = -1.0 if det < 0.0 else 1.0

    if npar == 1:
        t = J[:, 0]
        length = np.linalg.norm(t)
        if length == 0.0:
            return 0.0, np.zeros(nsd)
        return 1.0, sign * t / length

    if npar == 2 and nsd == 2:
        t = J[:, 1 - direction]
        if direction == 0:
            n = np.array([t[1], -t[0]])
        else:
            n = np.array([-t[1], t[0]])
    elif npar == 3 and nsd == 3:
        a, b = [k for k in range(3) if k != direction]
        n = np.cross(J[:, a], J[:, b])
        if direction == 1:
            n = -n
    else:
        raise ValueError(f"Boundary normals not available for npar={npar}, nsd={nsd}")

    dS = float(np.linalg.norm(n))
    if dS <= DEGENERATE_TOL * np.linalg.norm(J) ** (npar - 1):
        return 0.0, np.zeros(nsd)
    return dS, sign * orient * n / dS
