import logging
import sys
import numpy as np

from data_structures import match_keypoints, keypoint_dist
from lidar_utils import remove_lidar_outliers, CLUSTER_TOLERANCE

logger = logging.getLogger(__name__)

LANE_WIDTH = 4.0            # meters, ego lane assumed centered on y = 0
MIN_KEYPOINT_DIST = 100.0   # pixels, min. current-frame distance between paired keypoints
NO_POINT_X = 1e9            # min. X when no point lies in the ego lane


def median(values):
    values = sorted(values)
    n = len(values)
    mid = n // 2
    return values[mid] if n % 2 else (values[mid - 1] + values[mid]) / 2.0


def is_valid_ttc(ttc):
    return bool(np.isfinite(ttc))


def min_valid_ttc(ttcs):
    valid = [t for t in ttcs if is_valid_ttc(t) and t > 0]
    return min(valid) if valid else float('inf')


def _safe_ratio(num, den):
    # IEEE semantics: x/0 -> +-inf, 0/0 -> nan
    with np.errstate(divide='ignore', invalid='ignore'):
        return float(np.float64(num) / np.float64(den))


def min_x_in_lane(lidar_points, lane_width=LANE_WIDTH):
    min_x = NO_POINT_X
    for p in lidar_points:
        if abs(p.y) <= lane_width / 2.0:
            min_x = min(min_x, p.x)
    return min_x


def compute_ttc_lidar(lidar_points_prev, lidar_points_curr, frame_rate,
                      cluster_tolerance=CLUSTER_TOLERANCE, lane_width=LANE_WIDTH):
    """
    Constant-velocity TTC from the closest in-lane lidar point of each frame,
    after keeping only the dominant cluster of each point cloud.
    """
    dt = 1 / frame_rate
    prev_clustered = remove_lidar_outliers(lidar_points_prev, cluster_tolerance)
    curr_clustered = remove_lidar_outliers(lidar_points_curr, cluster_tolerance)

    min_x_prev = min_x_in_lane(prev_clustered, lane_width)
    min_x_curr = min_x_in_lane(curr_clustered, lane_width)
    logger.debug("Prev min X = %s, Curr min X = %s", min_x_prev, min_x_curr)

    ttc = _safe_ratio(min_x_curr * dt, min_x_prev - min_x_curr)
    if not is_valid_ttc(ttc):
        logger.debug("Lidar TTC is not finite (%s)", ttc)
    return ttc


def compute_ttc_camera(kpts_prev, kpts_curr, kpt_matches, frame_rate, min_dist=MIN_KEYPOINT_DIST):
    """
    TTC from the median scale change between pairs of matched keypoints.
    Negative values mean the object is receding. NaN when no pair qualifies.
    """
    # resolve once so a bad index fails before any work is done
    pairs = [match_keypoints(m, kpts_prev, kpts_curr) for m in kpt_matches]

    dist_ratios = []
    for i, (outer_prev, outer_curr) in enumerate(pairs):
        for inner_prev, inner_curr in pairs[i + 1:]:
            dist_curr = keypoint_dist(outer_curr, inner_curr)
            dist_prev = keypoint_dist(outer_prev, inner_prev)
            if dist_prev > sys.float_info.epsilon and dist_curr >= min_dist:
                dist_ratios.append(dist_curr / dist_prev)

    if not dist_ratios:
        logger.debug("No keypoint pair qualifies for camera TTC")
        return float('nan')

    med_dist_ratio = median(dist_ratios)
    logger.debug("medDistRatio = %s over %d ratios", med_dist_ratio, len(dist_ratios))

    dt = 1 / frame_rate
    return _safe_ratio(-dt, 1 - med_dist_ratio)
