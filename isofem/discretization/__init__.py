"""
Discretization module for isofem.

Provides:
- KnotVector: Knot vector representation
- Knot insertion and order elevation of knot vectors
"""

from .knot_vector import (
    KnotVector,
    make_open_knot_vector,
    make_uniform_knot_vector,
    insert_knots,
    elevate_knot_vector,
)
