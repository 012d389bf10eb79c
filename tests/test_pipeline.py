import math
import pytest

from data_structures import Correspondence, KeyPoint2D, ObjectRegion, Point3D
from pipeline import FusionParams, Frame, TTCResult, assign_lidar_points, process_frame_pair, run_sequence


def vehicle_points(x):
    # compact blob straight ahead, projects around pixel (500, 500)
    return [Point3D(x, 0.0, 0.0, 0.2), Point3D(x, 0.05, 0.0, 0.3),
            Point3D(x, 0.0, 0.05, 0.1), Point3D(x + 0.05, 0.0, 0.0, 0.4)]


def square(scale):
    return [KeyPoint2D(500 + scale * dx, 500 + scale * dy) for dx, dy in [(-100, -100), (100, -100),
                                                                          (-100, 100), (100, 100)]]


def make_frame(x, scale, extra_points=()):
    boxes = [ObjectRegion(0, 0, 0, 1000, 1000), ObjectRegion(1, 2000, 2000, 100, 100)]
    return Frame(keypoints=square(scale), bounding_boxes=boxes, lidar_points=vehicle_points(x) + list(extra_points))


MATCHES = [Correspondence(i, i) for i in range(4)]


def test_process_frame_pair(calibration):
    prev, curr = make_frame(10.0, 1.0), make_frame(8.0, 1.25)
    params = FusionParams()
    assign_lidar_points(prev, calibration, params)

    results = process_frame_pair(prev, curr, MATCHES, calibration, params)
    assert len(results) == 1
    result = results[0]
    assert isinstance(result, TTCResult)
    assert (result.prev_id, result.curr_id) == (0, 0)
    assert result.ttc_lidar == pytest.approx(0.4)
    assert result.ttc_camera == pytest.approx(0.4)
    assert curr.bounding_boxes[0].kpt_matches == MATCHES
    assert len(curr.bounding_boxes[0].lidar_points) == 4
    assert curr.bounding_boxes[1].lidar_points == []


def test_missing_lidar_points_give_nan(calibration):
    prev, curr = make_frame(10.0, 1.0), make_frame(8.0, 1.25)
    # prev frame never had its points assigned
    result = process_frame_pair(prev, curr, MATCHES, calibration)[0]
    assert math.isnan(result.ttc_lidar)
    assert result.ttc_camera == pytest.approx(0.4)


def test_roi_crop_is_applied(calibration):
    behind_roi = Point3D(2.0, 0.0, 0.0)
    frame = make_frame(10.0, 1.0, extra_points=[behind_roi])
    assign_lidar_points(frame, calibration, FusionParams(roi={'x': (5, 50), 'y': (-3, 3), 'z': (-1, 1)}))
    assert behind_roi not in frame.bounding_boxes[0].lidar_points
    assert len(frame.bounding_boxes[0].lidar_points) == 4


def test_run_sequence(calibration):
    frames = [make_frame(10.0, 1.0), make_frame(8.0, 1.25), make_frame(6.0, 1.25 * 8.0 / 6.0)]
    results = run_sequence(frames, [MATCHES, MATCHES], calibration, progress=False)
    assert len(results) == 2
    assert results[0][0].ttc_lidar == pytest.approx(0.4)
    assert results[1][0].ttc_lidar == pytest.approx(0.3)
    assert results[1][0].ttc_camera == pytest.approx(0.3)


def test_run_sequence_checks_match_lists(calibration):
    with pytest.raises(ValueError):
        run_sequence([make_frame(10.0, 1.0), make_frame(8.0, 1.0)], [], calibration, progress=False)
    assert run_sequence([], [], calibration, progress=False) == []


@pytest.mark.parametrize("kwargs", [
    {'shrink_factor': 1.0}, {'shrink_factor': -0.1}, {'frame_rate': 0}, {'cluster_tolerance': 0},
    {'lane_width': -1}, {'match_outlier_ratio': 0},
])
def test_invalid_params(kwargs):
    with pytest.raises(ValueError):
        FusionParams(**kwargs).validate()
