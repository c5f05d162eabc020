"""Pose estimation module with pluggable backends."""

from impact_sync.pose.base import COCO_KEYPOINTS, KeypointData, PoseBackend, PoseKeypointSet
from impact_sync.pose.provider import KeypointProvider, create_pose_backend, estimate_keypoints

__all__ = [
    "COCO_KEYPOINTS",
    "KeypointData",
    "PoseBackend",
    "PoseKeypointSet",
    "KeypointProvider",
    "create_pose_backend",
    "estimate_keypoints",
]
