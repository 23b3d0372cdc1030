"""
Analysis configuration.

All options that influence patch construction, numerical integration and
time integration are collected in small immutable dataclasses. They are
passed explicitly to the objects that need them, so there is no
process-wide state.

Example JSON format:
    {
      "mixed": {"geo_uses_basis1": false, "use_cp_minus1": false},
      "integration": {"n_gauss": 3, "n_threads": 4},
      "newmark": {"alpha": -0.1, "alpha1": 0.0, "alpha2": 0.0}
    }

Usage:
    cfg = load_config("analysis.json")
    patch = StructuredPatch(surface, mixed_config=cfg.mixed, integration=cfg.integration)
"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class MixedBasisConfig:
    """
    Conventions for patches with two solution bases.

    Attributes:
        geo_uses_basis1: Geometry is represented by basis 1 (the enriched
                         basis) instead of basis 2
        use_cp_minus1: Basis 1 has C^(p-1) continuity at simple knots,
                       i.e. it is k-refined instead of order elevated
        use_low_order_basis1: Basis 1 is the low-order basis, basis 2 the
                              enriched one
    """
    geo_uses_basis1: bool = False
    use_cp_minus1: bool = False
    use_low_order_basis1: bool = False


@dataclass(frozen=True)
class IntegrationConfig:
    """
    Numerical integration options.

    Attributes:
        n_gauss: Gauss points per parametric direction, 0 means order p+1
        n_threads: Worker threads for element evaluation (1 = serial)
    """
    n_gauss: int = 0
    n_threads: int = 1

    def __post_init__(self):
        if self.n_gauss < 0:
            raise ValueError(f"n_gauss must be non-negative, got {self.n_gauss}")
        if self.n_threads < 1:
            raise ValueError(f"n_threads must be positive, got {self.n_threads}")


@dataclass(frozen=True)
class NewmarkConfig:
    """
    Newmark time integration parameters.

    When beta and gamma are not given they follow from alpha as
    beta = (1-alpha)^2/4 and gamma = 1/2 - alpha.

    Attributes:
        alpha: HHT-alpha parameter (default -0.1)
        alpha1: Mass-proportional Rayleigh damping coefficient
        alpha2: Stiffness-proportional Rayleigh damping coefficient
        beta: Explicit Newmark beta, overrides alpha
        gamma: Explicit Newmark gamma, overrides alpha
    """
    alpha: float = -0.1
    alpha1: float = 0.0
    alpha2: float = 0.0
    beta: Optional[float] = None
    gamma: Optional[float] = None

    @property
    def newmark_beta(self) -> float:
        if self.beta is not None:
            return self.beta
        return 0.25 * (1.0 - self.alpha) ** 2

    @property
    def newmark_gamma(self) -> float:
        if self.gamma is not None:
            return self.gamma
        return 0.5 - self.alpha


@dataclass(frozen=True)
class AnalysisConfig:
    """Container for all configuration sections."""
    mixed: MixedBasisConfig = field(default_factory=MixedBasisConfig)
    integration: IntegrationConfig = field(default_factory=IntegrationConfig)
    newmark: NewmarkConfig = field(default_factory=NewmarkConfig)


_SECTIONS = {
    "mixed": MixedBasisConfig,
    "integration": IntegrationConfig,
    "newmark": NewmarkConfig,
}


def _build_section(cls, data: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(
            f"Unknown keys for {cls.__name__}: {', '.join(sorted(unknown))}"
        )
    return cls(**data)


def config_from_dict(data: Dict[str, Any]) -> AnalysisConfig:
    """
    Build an AnalysisConfig from a plain dictionary.

    Parameters:
        data: Mapping with optional "mixed", "integration" and "newmark" keys

    Returns:
        AnalysisConfig with defaults for missing sections
    """
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

    sections = {name: _build_section(cls, data[name])
                for name, cls in _SECTIONS.items() if name in data}
    return AnalysisConfig(**sections)


def load_config(filename: Union[str, Path]) -> AnalysisConfig:
    """
    Load analysis configuration from a JSON file.

    Parameters:
        filename: Path to the JSON file

    Returns:
        AnalysisConfig
    """
    with open(filename, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError("Configuration file must contain a JSON object")
    return config_from_dict(data)
