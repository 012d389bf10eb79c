import numpy as np
import pytest

from data_structures import Calibration, Point3D

FOCAL = 1000.0
CENTER = 500.0


@pytest.fixture
def calibration():
    """Pinhole camera looking along lidar +x. Lidar (x fwd, y left, z up) -> camera (x right, y down, z fwd)."""
    P_rect = np.array([
        [FOCAL, 0.0, CENTER, 0.0],
        [0.0, FOCAL, CENTER, 0.0],
        [0.0, 0.0, 1.0, 0.0],
    ])
    RT = np.array([
        [0.0, -1.0, 0.0, 0.0],
        [0.0, 0.0, -1.0, 0.0],
        [1.0, 0.0, 0.0, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ])
    return Calibration.from_matrices(P_rect, np.eye(3), RT)


def make_blob(center, n, spacing=0.02, payload=None):
    """n points on a line along x starting at center, spacing well below the default tolerance."""
    cx, cy, cz = center
    return [Point3D(cx + k * spacing, cy, cz, payload) for k in range(n)]


@pytest.fixture
def three_blobs():
    # sizes 3, 10, 2, tens of meters apart
    small = make_blob((5.0, 0.0, 0.0), 3, payload='small')
    large = make_blob((20.0, 0.0, 0.0), 10, payload='large')
    tiny = make_blob((40.0, 5.0, 0.0), 2, payload='tiny')
    return small, large, tiny


@pytest.fixture
def rng():
    return np.random.default_rng(42)
