"""
Geometry module for tensor-product and locally refined splines.
"""

from .spline import SplineGeometry
from .lrspline import LRSpline
from .primitives import (
    make_line,
    make_rectangle,
    make_unit_square,
    make_box,
    make_quarter_annulus,
)
