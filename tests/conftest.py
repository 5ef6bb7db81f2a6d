import numpy as np
import pytest

from background_subtraction.engines import has_bgsegm


requires_bgsegm = pytest.mark.skipif(
    not has_bgsegm(), reason="requires opencv-contrib-python (cv2.bgsegm)"
)


@pytest.fixture
def gray_frame():
    frame = np.full((64, 64), 100, dtype=np.uint8)
    frame[:, 32:] = 160
    return frame


@pytest.fixture
def color_frame():
    frame = np.zeros((64, 64, 3), dtype=np.uint8)
    frame[..., 0] = 40
    frame[..., 1] = 120
    frame[..., 2] = 200
    return frame


@pytest.fixture
def noise_frames():
    rng = np.random.default_rng(7)
    return [rng.integers(0, 256, size=(48, 64, 3), dtype=np.uint8) for _ in range(6)]


@pytest.fixture
def no_bgsegm(monkeypatch):
    """Pretend the installed OpenCV has no contrib modules."""
    from background_subtraction import engines

    monkeypatch.setattr(engines, "has_bgsegm", lambda: False)
