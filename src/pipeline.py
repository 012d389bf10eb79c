import logging
from dataclasses import dataclass, field
from typing import List, Optional
from tqdm import tqdm

from data_structures import KeyPoint2D, ObjectRegion, Point3D
from lidar_utils import CLUSTER_TOLERANCE, crop_lidar_points
from fusion import SHRINK_FACTOR, MATCH_OUTLIER_RATIO, cluster_lidar_with_roi, \
    cluster_kpt_matches_with_roi, match_bounding_boxes
from ttc import LANE_WIDTH, MIN_KEYPOINT_DIST, compute_ttc_lidar, compute_ttc_camera, min_valid_ttc

logger = logging.getLogger(__name__)

FRAME_RATE = 10.0       # Hz, lidar/camera frame pair rate

# ROI in meters. x forward, y left, z up. None -> no crop
LIDAR_ROI = None


@dataclass
class FusionParams:
    cluster_tolerance: float = CLUSTER_TOLERANCE
    lane_width: float = LANE_WIDTH
    shrink_factor: float = SHRINK_FACTOR
    match_outlier_ratio: float = MATCH_OUTLIER_RATIO
    min_keypoint_dist: float = MIN_KEYPOINT_DIST
    frame_rate: float = FRAME_RATE
    roi: Optional[dict] = LIDAR_ROI

    def validate(self):
        if not 0 <= self.shrink_factor < 1:
            raise ValueError(f"shrink_factor must be in [0, 1), got {self.shrink_factor}")
        for name in ('frame_rate', 'cluster_tolerance', 'lane_width', 'match_outlier_ratio'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        return self


@dataclass
class Frame:
    keypoints: List[KeyPoint2D]
    bounding_boxes: List[ObjectRegion]
    lidar_points: List[Point3D] = field(default_factory=list)


@dataclass(frozen=True)
class TTCResult:
    prev_id: int
    curr_id: int
    ttc_lidar: float
    ttc_camera: float


def assign_lidar_points(frame, calibration, params):
    points = frame.lidar_points
    if params.roi is not None:
        points = crop_lidar_points(points, params.roi)
    cluster_lidar_with_roi(frame.bounding_boxes, points, params.shrink_factor, calibration)


def process_frame_pair(prev_frame, curr_frame, kpt_matches, calibration, params=None):
    """
    Associate the boxes of two consecutive frames and estimate lidar and camera TTC
    for every associated pair. prev_frame's boxes must already hold their lidar points.
    """
    params = (params or FusionParams()).validate()
    assign_lidar_points(curr_frame, calibration, params)

    bb_best_matches = match_bounding_boxes(kpt_matches, prev_frame.bounding_boxes, curr_frame.bounding_boxes,
                                           prev_frame.keypoints, curr_frame.keypoints)
    prev_by_id = {bb.id: bb for bb in prev_frame.bounding_boxes}
    curr_by_id = {bb.id: bb for bb in curr_frame.bounding_boxes}

    results = []
    kpt_assigned = set()
    for prev_id, curr_id in bb_best_matches.items():
        prev_bb, curr_bb = prev_by_id[prev_id], curr_by_id[curr_id]

        ttc_lidar = float('nan')
        if prev_bb.lidar_points and curr_bb.lidar_points:
            ttc_lidar = compute_ttc_lidar(prev_bb.lidar_points, curr_bb.lidar_points, params.frame_rate,
                                          params.cluster_tolerance, params.lane_width)

        if curr_id not in kpt_assigned:
            cluster_kpt_matches_with_roi(curr_bb, prev_frame.keypoints, curr_frame.keypoints, kpt_matches,
                                         params.match_outlier_ratio)
            kpt_assigned.add(curr_id)
        ttc_camera = float('nan')
        if curr_bb.kpt_matches:
            ttc_camera = compute_ttc_camera(prev_frame.keypoints, curr_frame.keypoints, curr_bb.kpt_matches,
                                            params.frame_rate, params.min_keypoint_dist)

        logger.info("Box %s -> %s: TTC lidar %.3f s, TTC camera %.3f s", prev_id, curr_id, ttc_lidar, ttc_camera)
        results.append(TTCResult(prev_id, curr_id, ttc_lidar, ttc_camera))
    return results


def run_sequence(frames, kpt_matches_per_pair, calibration, params=None, progress=True):
    """kpt_matches_per_pair[i] links frames[i] to frames[i + 1]."""
    params = (params or FusionParams()).validate()
    if len(kpt_matches_per_pair) != max(len(frames) - 1, 0):
        raise ValueError(f"expected {max(len(frames) - 1, 0)} match lists for {len(frames)} frames, "
                         f"got {len(kpt_matches_per_pair)}")
    if not frames:
        return []

    assign_lidar_points(frames[0], calibration, params)
    all_results = []
    for i in tqdm(range(1, len(frames)), disable=not progress):
        results = process_frame_pair(frames[i - 1], frames[i], kpt_matches_per_pair[i - 1], calibration, params)
        min_ttc = min_valid_ttc([r.ttc_lidar for r in results] + [r.ttc_camera for r in results])
        logger.info("Frame %d: %d associated boxes, min TTC %.3f s", i, len(results), min_ttc)
        all_results.append(results)
    return all_results
