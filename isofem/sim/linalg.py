"""
Direct linear solvers.

All solvers return None for singular systems instead of raising, so the
callers can propagate the failure as a False/None result.
"""

import logging
import numpy as np
from scipy import sparse
from scipy.sparse.linalg import splu
from typing import Optional

logger = logging.getLogger(__name__)

# Condition number above which a small dense system is treated as singular
MAX_CONDITION = 1.0e12


def solve_sparse(A: sparse.spmatrix, B: np.ndarray) -> Optional[np.ndarray]:
    """
    Solve A X = B with a sparse LU factorization.

    Parameters:
        A: Square sparse matrix
        B: Right-hand side(s), shape (n,) or (n, k)

    Returns:
        Solution of the same shape as B, or None if A is singular
    """
    if A.shape[0] != A.shape[1] or A.shape[0] != B.shape[0]:
        logger.error("Incompatible system: matrix %s, right-hand side %s", A.shape, B.shape)
        return None
    try:
        lu = splu(sparse.csc_matrix(A))
    except RuntimeError as e:
        logger.error("Sparse factorization failed: %s", e)
        return None

    X = lu.solve(np.asarray(B, dtype=np.float64))
    if not np.all(np.isfinite(X)):
        logger.error("Sparse solve produced non-finite values")
        return None
    return X


def solve_dense(A: np.ndarray, B: np.ndarray) -> Optional[np.ndarray]:
    """
    Solve a small dense system A X = B by Gaussian elimination.

    Returns:
        Solution, or None if A is singular or ill-conditioned
    """
    try:
        if np.linalg.cond(A) > MAX_CONDITION:
            logger.debug("Dense system is ill-conditioned")
            return None
        return np.linalg.solve(A, B)
    except np.linalg.LinAlgError as e:
        logger.debug("Dense solve failed: %s", e)
        return None


def solve_least_squares(P: np.ndarray, B: np.ndarray) -> Optional[np.ndarray]:
    """
    Least-squares solution of the overdetermined system P X = B.

    Works on P directly (SVD) rather than on the normal equations, so the
    conditioning of the fit is that of P and not its square.

    Returns:
        Solution, or None if P does not have full column rank
    """
    try:
        X, _, rank, _ = np.linalg.lstsq(P, B, rcond=None)
    except np.linalg.LinAlgError as e:
        logger.debug("Least-squares solve failed: %s", e)
        return None
    if rank < P.shape[1]:
        logger.debug("Rank deficient fit: rank %d of %d", rank, P.shape[1])
        return None
    return X
