"""
Field dependencies between simulators.

A simulator registers the vectors other simulators may depend on
(register_field). A dependent simulator records which named fields it
needs (register_dependency); before integrating a patch it extracts the
patch part of each field into the named vector of its integrand.
"""

import logging
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..assembly.fields import SplineField

logger = logging.getLogger(__name__)


@dataclass
class Dependency:
    """
    A field of another simulator used by this one.

    Attributes:
        sim: Simulator owning the field
        name: Field name, also the name of the integrand's local vector
        components: Number of field components per node
        patches: Patches of the owning simulator (default: our own patches)
        different_basis: The field lives on a different basis than ours
    """
    sim: 'SimDependency'
    name: str
    components: int = 1
    patches: List = field(default_factory=list)
    different_basis: bool = False


class SimDependency:
    """Registry of exported fields and field dependencies of a simulator."""

    def __init__(self):
        self.dependencies: List[Dependency] = []
        self._fields: Dict[str, np.ndarray] = {}

    def register_dependency(self, sim: 'SimDependency', name: str, components: int = 1,
                            patches: Optional[Sequence] = None,
                            different_basis: bool = False):
        self.dependencies.append(Dependency(sim, name, components,
                                            list(patches or []), different_basis))

    def register_field(self, name: str, vec: np.ndarray):
        """Export a vector; it is shared, not copied."""
        self._fields[name] = vec

    def get_field(self, name: str) -> Optional[np.ndarray]:
        return self._fields.get(name)

    def extract_patch_dependencies(self, integrand, model: Sequence, pindx: int) -> bool:
        """
        Copy the patch part of each dependent field into the integrand.

        Parameters:
            integrand: Integrand receiving the named vectors
            model: Our patches
            pindx: Index of the patch about to be integrated
        """
        for dep in self.dependencies:
            gvec = dep.sim.get_field(dep.name)
            if gvec is None or len(gvec) == 0 or not integrand.has_named_vector(dep.name):
                continue

            patch = dep.patches[pindx] if pindx < len(dep.patches) else model[pindx]
            try:
                lvec = patch.extract_node_vec(gvec, dep.components)
                field = None
                if dep.different_basis:
                    field = SplineField(patch, lvec, 1, dep.components, dep.name)
            except (IndexError, ValueError) as e:
                logger.error("Dependent field %s does not fit patch %d: %s",
                             dep.name, pindx + 1, e)
                return False

            integrand.set_named_vector(dep.name, lvec)
            if field is not None:
                integrand.set_named_field(dep.name, field)
            logger.debug("Dependent field %s for patch %d", dep.name, pindx + 1)
        return True
