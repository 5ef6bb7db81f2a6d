"""
Background model engines.

Every engine follows one of three call protocols:
    UpdateMaskEngine -- update(frame), then mask()
    ApplyEngine      -- apply(frame) -> mask
    LazyEngine       -- initialize(frame, hint) once, then apply(frame) -> mask

The OpenCV models (MOG, GMG, CNT, MOG2) already implement ApplyEngine. The
bgsegm ones are only present in opencv-contrib builds.
"""

from typing import Optional, Protocol, Tuple
import logging

import cv2
import numpy as np

from .config import (
    AlgorithmVariant,
    CntParameters,
    GmgParameters,
    Mog2Parameters,
    MogParameters,
    ParameterSet,
    VibeParameters,
)
from .exceptions import UnsupportedVariantError


logger = logging.getLogger(__name__)


class UpdateMaskEngine(Protocol):
    def update(self, frame: np.ndarray) -> None: ...

    def mask(self) -> np.ndarray: ...


class ApplyEngine(Protocol):
    def apply(self, frame: np.ndarray) -> np.ndarray: ...


class LazyEngine(Protocol):
    def initialize(self, frame: np.ndarray, hint: Optional[np.ndarray]) -> None: ...

    def apply(self, frame: np.ndarray) -> np.ndarray: ...


class VibeEngine:
    """
    Sample-based background model (ViBe).

    Each pixel keeps `samples` past values. A pixel is background when at
    least `matching_threshold` of them are closer than `distance_threshold`.
    Background pixels are written back into their own sample set, and into a
    random neighbor's, with probability 1 / `update_factor`.
    """

    def __init__(
        self,
        channels: int = 1,
        samples: int = 20,
        pixel_neighbor: int = 1,
        distance_threshold: int = 20,
        matching_threshold: int = 3,
        update_factor: int = 16,
        seed: Optional[int] = None
    ):
        if samples < 1 or update_factor < 1:
            raise ValueError("samples and updateFactor must be positive")

        self.channels = channels
        self.samples = samples
        self.pixel_neighbor = max(0, pixel_neighbor)
        self.distance_threshold = distance_threshold
        self.matching_threshold = matching_threshold
        self.update_factor = update_factor
        self.rng = np.random.default_rng(seed)

        # (samples, height, width, channels)
        self._model: Optional[np.ndarray] = None
        self._mask: Optional[np.ndarray] = None

    def _initialize(self, pixels: np.ndarray):
        """Fill every sample with the first frame."""
        self._model = np.repeat(pixels[np.newaxis], self.samples, axis=0)
        self._mask = np.zeros(pixels.shape[:2], dtype=np.uint8)
        logger.debug(f"ViBe model seeded with a {pixels.shape[1]}x{pixels.shape[0]} frame")

    def update(self, frame: np.ndarray):
        pixels = np.asarray(frame)
        if pixels.ndim == 2:
            pixels = pixels[..., np.newaxis]
        if pixels.shape[2] != self.channels:
            raise ValueError(
                f"ViBe model expects {self.channels}-channel frames, got {pixels.shape[2]}"
            )
        pixels = pixels.astype(np.int16)

        if self._model is None or self._model.shape[1:] != pixels.shape:
            self._initialize(pixels)
            return

        # L1 distance over channels, threshold scaled to the channel count
        distance = np.abs(self._model - pixels[np.newaxis]).sum(axis=3)
        matches = np.count_nonzero(
            distance < self.distance_threshold * pixels.shape[2], axis=0
        )
        background = matches >= self.matching_threshold

        self._mask = np.where(background, 0, 255).astype(np.uint8)
        self._update_model(pixels, background)

    def _update_model(self, pixels: np.ndarray, background: np.ndarray):
        height, width = background.shape

        chosen = background & (self.rng.integers(0, self.update_factor, size=(height, width)) == 0)
        ys, xs = np.nonzero(chosen)
        if ys.size:
            slots = self.rng.integers(0, self.samples, size=ys.size)
            self._model[slots, ys, xs] = pixels[ys, xs]

        if self.pixel_neighbor == 0:
            return

        chosen = background & (self.rng.integers(0, self.update_factor, size=(height, width)) == 0)
        ys, xs = np.nonzero(chosen)
        if not ys.size:
            return

        radius = self.pixel_neighbor
        ny = np.clip(ys + self.rng.integers(-radius, radius + 1, size=ys.size), 0, height - 1)
        nx = np.clip(xs + self.rng.integers(-radius, radius + 1, size=xs.size), 0, width - 1)
        slots = self.rng.integers(0, self.samples, size=ys.size)
        self._model[slots, ny, nx] = pixels[ys, xs]

    def mask(self) -> np.ndarray:
        if self._mask is None:
            raise RuntimeError("ViBe mask requested before the first update")
        return self._mask


class PixelStabilityEngine:
    """
    Two-phase wrapper around the LSBP pixel classifier from cv2.bgsegm.

    `initialize` builds a fresh model and primes it with the first frame;
    `apply` segments every following frame.
    """

    def __init__(self, params):
        self.params = params
        self._model = None

    @staticmethod
    def _prepare(frame: np.ndarray) -> np.ndarray:
        if frame.ndim == 2 or frame.shape[2] == 1:
            return cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        return frame

    def initialize(self, frame: np.ndarray, hint: Optional[np.ndarray] = None):
        """
        Start a new model from `frame`.

        `hint` is an optional region-of-interest mask; LSBP always models the
        whole frame so it is accepted and not used.
        """
        p = self.params
        self._model = cv2.bgsegm.createBackgroundSubtractorLSBP(
            nSamples=p.samples,
            LSBPRadius=p.lsbp_radius,
            Tlower=p.t_lower,
            Tupper=p.t_upper,
            Tinc=p.t_inc,
            Tdec=p.t_dec,
            Rscale=p.r_scale,
            Rincdec=p.r_incdec,
            LSBPthreshold=p.lsbp_threshold,
            minCount=p.min_count
        )
        self._model.apply(self._prepare(frame))

    def apply(self, frame: np.ndarray) -> np.ndarray:
        if self._model is None:
            raise RuntimeError("Pixel stability model used before initialize()")
        return self._model.apply(self._prepare(frame))


def has_bgsegm() -> bool:
    """True when the OpenCV build ships the contrib bgsegm module."""
    return hasattr(cv2, "bgsegm")


def opencv_version() -> Tuple[int, int]:
    major, minor = cv2.__version__.split(".")[:2]
    return int(major), int(minor)


def check_available(variant: AlgorithmVariant):
    """Raise UnsupportedVariantError if the installed OpenCV cannot build `variant`."""
    if variant in (AlgorithmVariant.VIBE, AlgorithmVariant.MOG2):
        return

    if not has_bgsegm():
        raise UnsupportedVariantError(variant, "requires opencv-contrib-python (cv2.bgsegm)")

    if variant is AlgorithmVariant.CNT and opencv_version() < (3, 2):
        raise UnsupportedVariantError(
            variant, f"requires OpenCV >= 3.2, found {cv2.__version__}"
        )


def build_engine(variant: AlgorithmVariant, params: ParameterSet, channels: int):
    """Construct the engine of `variant` from its resolved parameters."""
    check_available(variant)

    if variant is AlgorithmVariant.VIBE:
        p: VibeParameters = params
        return VibeEngine(
            channels=channels,
            samples=p.samples,
            pixel_neighbor=p.pixel_neighbor,
            distance_threshold=p.distance_threshold,
            matching_threshold=p.matching_threshold,
            update_factor=p.update_factor
        )

    if variant is AlgorithmVariant.MOG:
        p: MogParameters = params
        return cv2.bgsegm.createBackgroundSubtractorMOG(
            history=p.history,
            nmixtures=p.nmixtures,
            backgroundRatio=p.background_ratio,
            noiseSigma=p.noise_sigma
        )

    if variant is AlgorithmVariant.GMG:
        p: GmgParameters = params
        return cv2.bgsegm.createBackgroundSubtractorGMG(
            initializationFrames=p.initialization_frames,
            decisionThreshold=p.decision_threshold
        )

    if variant is AlgorithmVariant.CNT:
        p: CntParameters = params
        return cv2.bgsegm.createBackgroundSubtractorCNT(
            minPixelStability=p.min_pixel_stability,
            useHistory=p.use_history != 0,
            maxPixelStability=p.max_pixel_stability,
            isParallel=p.is_parallel != 0
        )

    if variant in (AlgorithmVariant.SUBSENSE, AlgorithmVariant.LOBSTER):
        return PixelStabilityEngine(params)

    if variant is AlgorithmVariant.MOG2:
        p: Mog2Parameters = params
        return cv2.createBackgroundSubtractorMOG2(
            history=p.history,
            varThreshold=p.var_threshold,
            detectShadows=p.detect_shadows != 0
        )

    raise UnsupportedVariantError(variant, "no engine registered")
