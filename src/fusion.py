import logging
import numpy as np

from data_structures import match_keypoints, keypoint_dist
from lidar_utils import points_to_array, project_lidar_to_image

logger = logging.getLogger(__name__)

SHRINK_FACTOR = 0.10
MATCH_OUTLIER_RATIO = 1.5


def cluster_lidar_with_roi(bounding_boxes, lidar_points, shrink_factor, calibration):
    """
    Append each lidar point to the one bounding box whose shrunk rectangle encloses
    its image projection. Points enclosed by no box or by several boxes are dropped.
    """
    if not 0 <= shrink_factor < 1:
        raise ValueError(f"shrink_factor must be in [0, 1), got {shrink_factor}")
    if len(lidar_points) == 0 or len(bounding_boxes) == 0:
        return
    img_pts = project_lidar_to_image(points_to_array(lidar_points), calibration)

    boxes = np.array([bb.shrunk(shrink_factor) for bb in bounding_boxes])  # (M,4) x, y, w, h
    px, py = img_pts[:, 0:1], img_pts[:, 1:2]
    enclosed = (
        (px >= boxes[:, 0]) & (px < boxes[:, 0] + boxes[:, 2]) &
        (py >= boxes[:, 1]) & (py < boxes[:, 1] + boxes[:, 3])
    )   # (N,M)

    dropped = 0
    for point, row in zip(lidar_points, enclosed):
        hits = np.flatnonzero(row)
        if len(hits) == 1:
            bounding_boxes[hits[0]].lidar_points.append(point)
        else:
            dropped += 1
    logger.debug("Assigned %d of %d lidar points to boxes", len(lidar_points) - dropped, len(lidar_points))


def cluster_kpt_matches_with_roi(bounding_box, kpts_prev, kpts_curr, kpt_matches,
                                 outlier_ratio=MATCH_OUTLIER_RATIO):
    """
    Append the matches whose current keypoint lies in the box, then drop every match
    whose displacement is at least outlier_ratio times the mean displacement in the box.
    """
    for match in kpt_matches:
        _, kp_curr = match_keypoints(match, kpts_prev, kpts_curr)
        if bounding_box.contains(kp_curr.x, kp_curr.y):
            bounding_box.kpt_matches.append(match)

    if not bounding_box.kpt_matches:
        return

    dists = [keypoint_dist(*match_keypoints(m, kpts_prev, kpts_curr)) for m in bounding_box.kpt_matches]
    mean = sum(dists) / len(dists)
    kept = [m for m, d in zip(bounding_box.kpt_matches, dists) if d < mean * outlier_ratio]
    logger.debug("Box %s: kept %d of %d matches (mean displacement %.2f px)",
                 bounding_box.id, len(kept), len(dists), mean)
    bounding_box.kpt_matches = kept


def match_bounding_boxes(matches, prev_boxes, curr_boxes, kpts_prev, kpts_curr):
    """
    Map each previous box id to the current box id sharing the most keypoint matches.
    Ties go to the current box that got its first vote earliest. Boxes without any
    vote are absent from the result.
    """
    endpoints = [match_keypoints(m, kpts_prev, kpts_curr) for m in matches]

    best_matches = {}
    for prev_box in prev_boxes:
        votes = {}
        for curr_box in curr_boxes:
            for kp_prev, kp_curr in endpoints:
                if prev_box.contains(kp_prev.x, kp_prev.y) and curr_box.contains(kp_curr.x, kp_curr.y):
                    votes[curr_box.id] = votes.get(curr_box.id, 0) + 1

        if not votes:
            logger.debug("ID Matching: %s => no match", prev_box.id)
            continue
        best_id = max(votes, key=votes.get)
        best_matches[prev_box.id] = best_id
        logger.debug("ID Matching: %s => %s (%d votes)", prev_box.id, best_id, votes[best_id])
    return best_matches
