"""
Background Subtraction Module

Runtime-selectable foreground/background segmentation for video frames.
One background model is active per instance; every mask it produces goes
through the same median + dilation cleanup.

Main Components:
- BackgroundSubtractor: Facade owning the active model
- ModelFactory: Model construction with fallback to ViBe
- SubtractionEngine: Per-algorithm call protocol
- resolve_parameters: String-keyed config -> typed parameters

Supported Algorithms:
- VIBE: Sample-based model (always available)
- MOG2: Gaussian Mixture Model with shadow detection
- MOG, GMG, CNT: bgsegm models (require opencv-contrib-python)
- SUBSENSE, LOBSTER: Pixel stability classifiers (require opencv-contrib-python)

Example Usage:
    from background_subtraction import BackgroundSubtractor

    subtractor = BackgroundSubtractor("mog2", channels=3, config={"history": "300"})
    mask = subtractor.subtract(frame)
"""

__version__ = "1.0.0"
__all__ = [
    "AlgorithmVariant",
    "BackgroundSubtractor",
    "ConfigurationParseError",
    "InitState",
    "ModelFactory",
    "SubtractionEngine",
    "UnsupportedVariantError",
    "adapt_channels",
    "post_process_mask",
    "resolve_parameters",
]

from .config import AlgorithmVariant, resolve_parameters
from .exceptions import ConfigurationParseError, UnsupportedVariantError
from .factory import InitState, ModelFactory
from .background_processor import (
    BackgroundSubtractor,
    SubtractionEngine,
    adapt_channels,
    post_process_mask,
)
