"""
Model construction with a single fallback to the ViBe model.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional
import logging

from .config import AlgorithmVariant, ParameterSet, resolve_parameters
from .engines import build_engine
from .exceptions import ConfigurationParseError, UnsupportedVariantError


DEFAULT_VARIANT = AlgorithmVariant.VIBE


class InitState(Enum):
    UNINITIALIZED = "uninitialized"
    RESOLVING = "resolving"
    UNSUPPORTED = "unsupported"
    READY = "ready"


@dataclass(frozen=True)
class ModelHandle:
    """The active background model together with what it was built from."""

    variant: AlgorithmVariant
    parameters: ParameterSet
    engine: Any


def create_model(
    variant: AlgorithmVariant,
    config: Optional[Mapping[str, Any]],
    channels: int
) -> ModelHandle:
    """Resolve parameters for `variant` and build its engine."""
    params = resolve_parameters(config, variant)
    engine = build_engine(variant, params, channels)
    return ModelHandle(variant=variant, parameters=params, engine=engine)


class ModelFactory:
    """
    Builds exactly one model per call.

    An unsupported variant is replaced by DEFAULT_VARIANT and construction
    runs once more for it. Configuration errors are not recovered.
    """

    def __init__(self):
        self.state = InitState.UNINITIALIZED
        self.variant: Optional[AlgorithmVariant] = None
        self.logger = logging.getLogger(__name__)

    def build(
        self,
        variant: AlgorithmVariant,
        config: Optional[Mapping[str, Any]],
        channels: int
    ) -> ModelHandle:
        self.variant = variant
        self.state = InitState.RESOLVING

        try:
            handle = self._construct(variant, config, channels)
        except UnsupportedVariantError as e:
            if variant is DEFAULT_VARIANT:
                raise
            self.logger.warning(f"{e}. Using {DEFAULT_VARIANT.name} by default.")

            self.variant = DEFAULT_VARIANT
            self.state = InitState.RESOLVING
            handle = self._construct(DEFAULT_VARIANT, config, channels)

        self.state = InitState.READY
        self.logger.info(f"Background model ready: {handle.variant.name} {handle.parameters}")
        return handle

    def _construct(self, variant, config, channels) -> ModelHandle:
        try:
            return create_model(variant, config, channels)
        except ConfigurationParseError as e:
            self.state = InitState.UNINITIALIZED
            self.logger.error(f"Failed to configure {variant.name}: {e}")
            raise
        except UnsupportedVariantError:
            self.state = InitState.UNSUPPORTED
            raise
        except Exception as e:
            self.state = InitState.UNINITIALIZED
            self.logger.error(f"Failed to build {variant.name} model: {e}")
            raise
