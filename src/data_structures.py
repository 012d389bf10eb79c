from dataclasses import dataclass, field
from typing import Any, List
import numpy as np

Cluster = List[int]     # indices into the clustered point list


class CorrespondenceIndexError(IndexError):
    pass


@dataclass(frozen=True)
class Point3D:
    x: float    # forward, meters
    y: float    # left, meters
    z: float    # up, meters
    payload: Any = None     # e.g. reflectivity, carried through untouched

    def xyz(self):
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class KeyPoint2D:
    x: float
    y: float


@dataclass(frozen=True)
class Correspondence:
    prev_idx: int   # index into previous frame keypoints
    curr_idx: int   # index into current frame keypoints


@dataclass
class ObjectRegion:
    id: int
    x: float
    y: float
    width: float
    height: float
    lidar_points: List[Point3D] = field(default_factory=list)
    kpt_matches: List[Correspondence] = field(default_factory=list)

    def contains(self, px, py):
        return self.x <= px < self.x + self.width and self.y <= py < self.y + self.height

    def shrunk(self, shrink_factor):
        """(x, y, width, height) of the box shrunk around its center."""
        return (
            self.x + shrink_factor * self.width / 2.0,
            self.y + shrink_factor * self.height / 2.0,
            self.width * (1 - shrink_factor),
            self.height * (1 - shrink_factor),
        )


@dataclass(frozen=True)
class Calibration:
    P_rect: np.ndarray  # (3,4) projection
    R_rect: np.ndarray  # (4,4) rectification, homogeneous
    RT: np.ndarray      # (4,4) lidar -> camera extrinsics

    @classmethod
    def from_matrices(cls, P_rect, R_rect, RT):
        P_rect = np.asarray(P_rect, dtype=np.float64)
        R_rect = np.asarray(R_rect, dtype=np.float64)
        RT = np.asarray(RT, dtype=np.float64)
        if P_rect.shape != (3, 4):
            raise ValueError(f"projection matrix must be 3x4, got {P_rect.shape}")
        if R_rect.shape == (3, 3):
            R4 = np.eye(4)
            R4[:3, :3] = R_rect
            R_rect = R4
        elif R_rect.shape != (4, 4):
            raise ValueError(f"rectification matrix must be 3x3 or 4x4, got {R_rect.shape}")
        if RT.shape == (3, 4):
            RT = np.vstack([RT, [0.0, 0.0, 0.0, 1.0]])
        elif RT.shape != (4, 4):
            raise ValueError(f"extrinsic matrix must be 3x4 or 4x4, got {RT.shape}")
        return cls(P_rect, R_rect, RT)

    def lidar_to_image(self):
        return self.P_rect @ self.R_rect @ self.RT     # (3,4)


def get_keypoint(keypoints, idx, frame_name):
    if not 0 <= idx < len(keypoints):
        raise CorrespondenceIndexError(
            f"{frame_name} keypoint index {idx} out of range for {len(keypoints)} keypoints")
    return keypoints[idx]


def match_keypoints(match, kpts_prev, kpts_curr):
    """Previous and current keypoint of a correspondence, range-checked."""
    return (get_keypoint(kpts_prev, match.prev_idx, 'previous'),
            get_keypoint(kpts_curr, match.curr_idx, 'current'))


def keypoint_dist(a, b):
    return float(np.hypot(a.x - b.x, a.y - b.y))
