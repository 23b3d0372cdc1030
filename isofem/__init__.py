"""
isofem - Isogeometric finite element substrate

Spline patches (tensor-product B-splines/NURBS and LR B-splines) with
finite element topology, element-wise integration into sparse systems,
recovery of secondary solutions and Newmark time integration.

Key modules:
- geometry: B-spline basis evaluation, tensor-product splines, LR B-splines
- discretization: Knot vectors, knot insertion and order elevation
- assembly: Patches, integrands, element and global integrals, recovery
- sim: Simulator, Dirichlet conditions, Newmark time integration
- solver: Sample integrands (Poisson, scalar wave)
- quadrature: Gauss-Legendre integration

Quick start (static):
    from isofem.geometry.primitives import make_unit_square
    from isofem.assembly.structured import StructuredPatch
    from isofem.sim.base import Simulator
    from isofem.solver.poisson import Poisson

    patch = StructuredPatch(make_unit_square(p=2, n_elem_u=4, n_elem_v=4))
    for face in (-1, 1, -2, 2):
        patch.constrain_face(face)

    sim = Simulator([patch], Poisson(nsd=2, source=lambda x, y: 1.0))
    sim.preprocess()
    u = sim.solve_static()

Quick start (recovery):
    from isofem.assembly.recovery import ProjectionMethod

    flux = sim.project(u, ProjectionMethod.SCR)[0]

Quick start (dynamics):
    from isofem.sim.newmark import NewmarkNLSIM
    from isofem.sim.time_step import TimeStep
    from isofem.solver.wave import ScalarWave

    sim = Simulator([patch], ScalarWave(nsd=2), n_solutions=3)
    sim.preprocess()
    newmark = NewmarkNLSIM(sim)
    newmark.init()
    newmark.init_eq_system()
    tp = TimeStep.uniform(dt=0.01, stop_time=1.0)
    while not tp.has_reached_end():
        newmark.advance_step(tp)
        newmark.solve_step(tp)
"""

__version__ = "0.1.0"

# Core imports for convenience
from .geometry.spline import SplineGeometry
from .geometry.lrspline import LRSpline
from .geometry.primitives import make_line, make_unit_square, make_rectangle, make_box
from .assembly.structured import StructuredPatch
from .assembly.unstructured import UnstructuredPatch
from .assembly.recovery import ProjectionMethod
from .sim.base import Simulator
from .sim.newmark import NewmarkNLSIM
