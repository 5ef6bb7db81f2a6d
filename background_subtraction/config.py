"""
Configuration module for background subtraction.
Declares the supported algorithms and their tunable parameters, and turns a
generic string-keyed option map into a typed parameter set per algorithm.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type, Union
import logging

from .exceptions import ConfigurationParseError


logger = logging.getLogger(__name__)


class EngineShape(Enum):
    """Call protocol a background model engine exposes."""

    UPDATE_MASK = "update_mask"          # update(frame) + mask()
    APPLY = "apply"                      # apply(frame) -> mask
    APPLY_THRESHOLD = "apply_threshold"  # apply(frame) -> mask, then binarized
    LAZY = "lazy"                        # initialize(frame, hint) + apply(frame)


class AlgorithmVariant(Enum):
    """Supported background modeling algorithms."""

    VIBE = "vibe"
    MOG = "mog"
    GMG = "gmg"
    CNT = "cnt"
    SUBSENSE = "subsense"
    LOBSTER = "lobster"
    MOG2 = "mog2"

    @property
    def shape(self) -> EngineShape:
        return _VARIANT_SHAPES[self]

    @classmethod
    def parse(cls, name: Union[str, "AlgorithmVariant"]) -> "AlgorithmVariant":
        """Look up a variant by case-insensitive name."""
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            supported = ", ".join(v.name for v in cls)
            raise ValueError(f"Unsupported algorithm: {name}. Use one of {supported}")


_VARIANT_SHAPES = {
    AlgorithmVariant.VIBE: EngineShape.UPDATE_MASK,
    AlgorithmVariant.MOG: EngineShape.APPLY,
    AlgorithmVariant.GMG: EngineShape.APPLY,
    AlgorithmVariant.CNT: EngineShape.APPLY,
    AlgorithmVariant.SUBSENSE: EngineShape.LAZY,
    AlgorithmVariant.LOBSTER: EngineShape.LAZY,
    AlgorithmVariant.MOG2: EngineShape.APPLY_THRESHOLD,
}


def _option(key: str, default, kind: type = int, minimum=None):
    """Dataclass field bound to a configuration key."""
    return field(
        default=kind(default),
        metadata={"key": key, "type": kind, "minimum": minimum}
    )


@dataclass(frozen=True)
class VibeParameters:
    """Parameters for the sample-based ViBe model."""

    samples: int = _option("samples", 20, minimum=1)
    pixel_neighbor: int = _option("pixelNeighbor", 1)
    distance_threshold: int = _option("distanceThreshold", 20)
    matching_threshold: int = _option("matchingThreshold", 3)
    update_factor: int = _option("updateFactor", 16, minimum=1)


@dataclass(frozen=True)
class MogParameters:
    """Parameters for the basic mixture of Gaussians model."""

    history: int = _option("history", 100)
    nmixtures: int = _option("nmixtures", 3)
    background_ratio: float = _option("backgroundRatio", 0.7, float)
    noise_sigma: float = _option("noiseSigma", 0, float)


@dataclass(frozen=True)
class GmgParameters:
    """Parameters for the GMG adaptive background model."""

    initialization_frames: int = _option("initializationFrames", 50)
    decision_threshold: float = _option("decisionThreshold", 0.7, float)


@dataclass(frozen=True)
class CntParameters:
    """Parameters for the pixel-count stability model."""

    min_pixel_stability: int = _option("minPixelStability", 15)
    use_history: int = _option("useHistory", 1)
    max_pixel_stability: int = _option("maxPixelStability", 15 * 60)
    is_parallel: int = _option("isParallel", 1)


@dataclass(frozen=True)
class SubsenseParameters:
    """
    Fixed settings of the adaptive pixel-stability classifier.

    Not read from the configuration map.
    """

    samples: int = 50
    lsbp_radius: int = 16
    t_lower: float = 2.0
    t_upper: float = 32.0
    t_inc: float = 1.0
    t_dec: float = 0.05
    r_scale: float = 10.0
    r_incdec: float = 0.005
    lsbp_threshold: int = 8
    min_count: int = 2


@dataclass(frozen=True)
class LobsterParameters:
    """
    Fixed settings of the non-adaptive pixel-stability classifier.

    Same descriptor as SubsenseParameters with every adaptation rate at zero.
    """

    samples: int = 35
    lsbp_radius: int = 16
    t_lower: float = 2.0
    t_upper: float = 32.0
    t_inc: float = 0.0
    t_dec: float = 0.0
    r_scale: float = 10.0
    r_incdec: float = 0.0
    lsbp_threshold: int = 8
    min_count: int = 2


@dataclass(frozen=True)
class Mog2Parameters:
    """Parameters for the mixture of Gaussians model with shadow detection."""

    history: int = _option("history", 500)
    var_threshold: int = _option("varThreshold", 16)
    detect_shadows: int = _option("detectShadows", 1)


ParameterSet = Union[
    VibeParameters,
    MogParameters,
    GmgParameters,
    CntParameters,
    SubsenseParameters,
    LobsterParameters,
    Mog2Parameters,
]

PARAMETER_TYPES: Dict[AlgorithmVariant, Type] = {
    AlgorithmVariant.VIBE: VibeParameters,
    AlgorithmVariant.MOG: MogParameters,
    AlgorithmVariant.GMG: GmgParameters,
    AlgorithmVariant.CNT: CntParameters,
    AlgorithmVariant.SUBSENSE: SubsenseParameters,
    AlgorithmVariant.LOBSTER: LobsterParameters,
    AlgorithmVariant.MOG2: Mog2Parameters,
}


def config_keys(variant: AlgorithmVariant) -> Dict[str, Any]:
    """Return the recognized configuration keys of a variant with their defaults."""
    return {
        f.metadata["key"]: f.default
        for f in fields(PARAMETER_TYPES[variant])
        if "key" in f.metadata
    }


def _parse_value(key: str, raw: Any, kind: type, minimum=None):
    text = str(raw).strip()
    try:
        value = kind(text)
    except ValueError:
        raise ConfigurationParseError(key, raw, kind) from None

    if minimum is not None and value < minimum:
        raise ConfigurationParseError(key, raw, kind, f"must be at least {minimum}")
    return value


def resolve_parameters(
    config: Optional[Mapping[str, Any]],
    variant: AlgorithmVariant
) -> ParameterSet:
    """
    Build the typed parameter set of a variant from a string-keyed config.

    Keys absent from the config keep their default, unknown keys are
    ignored. A present value that does not parse into the declared type, or
    falls below the declared minimum, raises ConfigurationParseError.
    """
    config = config or {}
    params_type = PARAMETER_TYPES[variant]

    overrides = {}
    for f in fields(params_type):
        key = f.metadata.get("key")
        if key is None or key not in config:
            continue
        overrides[f.name] = _parse_value(
            key, config[key], f.metadata["type"], f.metadata["minimum"]
        )

    params = params_type(**overrides)
    logger.debug(f"Resolved {variant.name} parameters: {params}")
    return params
