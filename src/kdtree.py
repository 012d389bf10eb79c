import numpy as np


class Node:
    def __init__(self, point, id):
        self.point = point
        self.id = id
        self.left = None
        self.right = None


class KdTree:
    """3D k-d tree, split axis cycles x, y, z with depth. Insert and radius search only."""

    def __init__(self):
        self.root = None
        self.size = 0

    def __len__(self):
        return self.size

    def insert(self, point, id):
        point = tuple(float(v) for v in point[:3])
        node = Node(point, id)
        self.size += 1
        if self.root is None:
            self.root = node
            return
        curr, depth = self.root, 0
        while True:
            axis = depth % 3
            side = 'left' if point[axis] < curr.point[axis] else 'right'
            child = getattr(curr, side)
            if child is None:
                setattr(curr, side, node)
                return
            curr, depth = child, depth + 1

    def search(self, target, distance_tol):
        """Ids of all points within distance_tol of target (closed ball)."""
        target = tuple(float(v) for v in target[:3])
        ids = []
        stack = [(self.root, 0)]
        while stack:
            node, depth = stack.pop()
            if node is None:
                continue
            p = node.point
            in_box = all(target[k] - distance_tol <= p[k] <= target[k] + distance_tol for k in range(3))
            if in_box and np.linalg.norm(np.subtract(p, target)) <= distance_tol:
                ids.append(node.id)

            axis = depth % 3
            # push right first so the left subtree is explored first
            if target[axis] + distance_tol >= p[axis]:
                stack.append((node.right, depth + 1))
            if target[axis] - distance_tol < p[axis]:
                stack.append((node.left, depth + 1))
        return ids
