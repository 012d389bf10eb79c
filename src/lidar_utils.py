import logging
import numpy as np

from kdtree import KdTree

logger = logging.getLogger(__name__)

CLUSTER_TOLERANCE = 0.1     # meters


def points_to_array(points):
    """(N,3) float array of the x, y, z of Point3D-like objects."""
    if len(points) == 0:
        return np.empty((0, 3))
    return np.array([(p.x, p.y, p.z) for p in points], dtype=np.float64)


def crop_lidar_points(points, roi):
    """Keep points inside the closed x/y/z intervals of roi, order and payload preserved."""
    if len(points) == 0:
        return []
    pts = points_to_array(points)
    x_range, y_range, z_range = roi['x'], roi['y'], roi['z']
    mask = (
        (pts[:, 0] >= x_range[0]) & (pts[:, 0] <= x_range[1]) &
        (pts[:, 1] >= y_range[0]) & (pts[:, 1] <= y_range[1]) &
        (pts[:, 2] >= z_range[0]) & (pts[:, 2] <= z_range[1])
    )
    return [p for p, keep in zip(points, mask) if keep]


def build_kdtree(points_xyz):
    tree = KdTree()
    for i, point in enumerate(points_xyz):
        tree.insert(point, i)
    return tree


def euclidean_clustering(points_xyz, tree, distance_tol):
    """
    Region growing over radius neighbours. Returns a list of index lists that
    partitions range(len(points_xyz)); isolated points become singleton clusters.
    Visit order is depth-first, identical to the recursive formulation.
    """
    processed = np.zeros(len(points_xyz), dtype=bool)
    clusters = []
    for i in range(len(points_xyz)):
        if processed[i]:
            continue
        cluster = [i]
        processed[i] = True
        stack = [iter(tree.search(points_xyz[i], distance_tol))]
        while stack:
            for idx in stack[-1]:
                if not processed[idx]:
                    processed[idx] = True
                    cluster.append(idx)
                    stack.append(iter(tree.search(points_xyz[idx], distance_tol)))
                    break
            else:
                stack.pop()
        clusters.append(cluster)
    return clusters


def remove_lidar_outliers(lidar_points, cluster_tolerance=CLUSTER_TOLERANCE):
    """Largest Euclidean cluster of lidar_points (first one wins ties), as the original points."""
    if len(lidar_points) == 0:
        return []
    pts = points_to_array(lidar_points)
    tree = build_kdtree(pts)
    clusters = euclidean_clustering(pts, tree, cluster_tolerance)

    largest = []
    for cluster in clusters:
        logger.debug("Cluster size = %d", len(cluster))
        if len(cluster) > len(largest):
            largest = cluster
    logger.debug("Max cluster size = %d of %d clusters", len(largest), len(clusters))
    return [lidar_points[i] for i in largest]


def project_lidar_to_image(points_xyz, calibration):
    """Pixel coordinates (N,2) of lidar points; depth <= 0 gives non-finite or mirrored values."""
    pts = np.asarray(points_xyz, dtype=np.float64).reshape(-1, 3)
    pts_h = np.hstack([pts, np.ones((len(pts), 1))])            # homogeneous (N,4)
    img_h = (calibration.lidar_to_image() @ pts_h.T).T          # (N,3)
    with np.errstate(divide='ignore', invalid='ignore'):
        pts_2d = img_h[:, :2] / img_h[:, 2:3]                   # divide by depth
    return pts_2d


def object_top_view_stats(regions):
    """Closest forward distance and lateral extent of each region's lidar points."""
    stats = []
    for region in regions:
        if region.lidar_points:
            pts = points_to_array(region.lidar_points)
            x_min = float(pts[:, 0].min())
            y_width = float(pts[:, 1].max() - pts[:, 1].min())
        else:
            x_min = y_width = float('nan')
        stats.append({
            'id': region.id,
            'num_points': len(region.lidar_points),
            'x_min': x_min,
            'y_width': y_width,
        })
    return stats
