"""
Core background subtraction processor module.
Adapts frames to the active model, dispatches them through the model's call
protocol and cleans up the resulting foreground mask.
"""

import cv2
import numpy as np
import time
from typing import Any, Dict, Mapping, Optional, Union
import logging

from .config import AlgorithmVariant, EngineShape, ParameterSet
from .factory import InitState, ModelFactory, ModelHandle


logger = logging.getLogger(__name__)

# MOG2 marks shadows with 127; everything at or below this is background
SHADOW_THRESHOLD = 200

MEDIAN_KERNEL_SIZE = 3
DILATE_KERNEL_SIZE = (3, 3)
DILATE_ANCHOR = (-1, -1)
DILATE_ITERATIONS = 2

_DILATE_ELEMENT = cv2.getStructuringElement(cv2.MORPH_RECT, DILATE_KERNEL_SIZE, DILATE_ANCHOR)


def frame_channels(frame: np.ndarray) -> int:
    return 1 if frame.ndim == 2 else frame.shape[2]


def adapt_channels(frame: np.ndarray, channels: int) -> np.ndarray:
    """Convert `frame` to the channel count the model expects."""
    current = frame_channels(frame)
    if current == channels:
        return frame

    if current == 1 and channels == 3:
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    if current == 3 and channels == 1:
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)

    raise ValueError(f"Cannot convert a {current}-channel frame to {channels} channels")


def post_process_mask(mask: np.ndarray) -> np.ndarray:
    """Despeckle with a 3x3 median filter, then dilate twice with a 3x3 rectangle."""
    processed_mask = cv2.medianBlur(mask, MEDIAN_KERNEL_SIZE)
    processed_mask = cv2.dilate(
        processed_mask,
        _DILATE_ELEMENT,
        anchor=DILATE_ANCHOR,
        iterations=DILATE_ITERATIONS
    )
    return processed_mask


class SubtractionEngine:
    """Runs one frame through the call protocol of the active model."""

    def __init__(self, handle: ModelHandle):
        self.handle = handle
        self.initialized = False
        self._initialized_size = None

    @property
    def shape(self) -> EngineShape:
        return self.handle.variant.shape

    def reset(self):
        """Force a two-phase model to re-initialize on the next frame."""
        self.initialized = False
        self._initialized_size = None

    def subtract(self, frame: np.ndarray) -> np.ndarray:
        engine = self.handle.engine
        shape = self.shape

        if shape is EngineShape.UPDATE_MASK:
            engine.update(frame)
            mask = engine.mask()
        elif shape is EngineShape.APPLY:
            mask = engine.apply(frame)
        elif shape is EngineShape.APPLY_THRESHOLD:
            mask = engine.apply(frame)
            _, mask = cv2.threshold(mask, SHADOW_THRESHOLD, 255, cv2.THRESH_BINARY)
        elif shape is EngineShape.LAZY:
            mask = self._subtract_lazy(frame)
        else:
            raise ValueError(f"Unknown engine shape: {shape}")

        if mask.shape[:2] != frame.shape[:2]:
            raise RuntimeError(
                f"{self.handle.variant.name} produced a {mask.shape[1]}x{mask.shape[0]} mask "
                f"for a {frame.shape[1]}x{frame.shape[0]} frame"
            )
        return mask

    def _subtract_lazy(self, frame: np.ndarray) -> np.ndarray:
        size = frame.shape[:2]
        if self.initialized and size == self._initialized_size:
            return self.handle.engine.apply(frame)

        if self.initialized:
            logger.debug(
                f"Frame size changed from {self._initialized_size} to {size}, "
                f"re-initializing {self.handle.variant.name}"
            )
        self.handle.engine.initialize(frame, None)
        self.initialized = True
        self._initialized_size = size
        return np.zeros(size, dtype=np.uint8)


class BackgroundSubtractor:
    """Foreground/background segmentation with a runtime-selected algorithm."""

    def __init__(
        self,
        variant: Union[AlgorithmVariant, str] = AlgorithmVariant.VIBE,
        channels: int = 1,
        config: Optional[Mapping[str, Any]] = None
    ):
        if channels not in (1, 3):
            raise ValueError(f"channels must be 1 or 3, got {channels}")

        self._channels = channels
        self._requested_variant = AlgorithmVariant.parse(variant)
        self._factory = ModelFactory()
        self._handle: Optional[ModelHandle] = None
        self._engine: Optional[SubtractionEngine] = None

        # Processing statistics
        self.stats = {
            'frames_processed': 0,
            'processing_time': 0.0,
            'avg_fps': 0.0
        }

        self.init(config or {})

    @property
    def channels(self) -> int:
        return self._channels

    @property
    def requested_variant(self) -> AlgorithmVariant:
        return self._requested_variant

    @property
    def variant(self) -> Optional[AlgorithmVariant]:
        """Variant of the active model; differs from the requested one after a fallback."""
        return self._handle.variant if self._handle else None

    @property
    def parameters(self) -> Optional[ParameterSet]:
        return self._handle.parameters if self._handle else None

    @property
    def state(self) -> InitState:
        return self._factory.state

    def init(self, config: Mapping[str, Any]) -> bool:
        """
        Build a new model for the requested variant from `config`.

        The previous model is discarded. Raises ConfigurationParseError when a
        value cannot be parsed.
        """
        self._handle = None
        self._engine = None

        handle = self._factory.build(self._requested_variant, config, self._channels)

        self._handle = handle
        self._engine = SubtractionEngine(handle)
        return True

    def subtract(self, frame: np.ndarray) -> np.ndarray:
        """Return the cleaned-up foreground mask of `frame`."""
        if self._engine is None:
            raise RuntimeError("Background model is not initialized")

        start_time = time.time()

        image = adapt_channels(frame, self._channels)
        foreground_mask = self._engine.subtract(image)
        processed_mask = post_process_mask(foreground_mask)

        processing_time = time.time() - start_time
        self.stats['frames_processed'] += 1
        self.stats['processing_time'] += processing_time
        if self.stats['processing_time'] > 0:
            self.stats['avg_fps'] = self.stats['frames_processed'] / self.stats['processing_time']

        return processed_mask

    def get_statistics(self) -> Dict[str, Any]:
        """Get processing statistics."""
        return self.stats.copy()

    def reset_statistics(self):
        """Reset processing statistics."""
        self.stats = {
            'frames_processed': 0,
            'processing_time': 0.0,
            'avg_fps': 0.0
        }
