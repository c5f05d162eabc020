"""Tests for the scoped keypoint provider."""

import numpy as np
import pytest

from conftest import FakePoseBackend
from impact_sync.exceptions import KeypointProviderBusyError
from impact_sync.extraction.frame_extractor import ExtractedFrame
from impact_sync.pose.base import PoseKeypointSet
from impact_sync.pose.provider import KeypointProvider, create_pose_backend, estimate_keypoints


def make_frames(count, interval_ms=10.0):
    return [
        ExtractedFrame(frame_index=i, timestamp_ms=i * interval_ms, image=np.zeros((4, 4, 3), dtype=np.uint8))
        for i in range(count)
    ]


class TestKeypointProvider:

    def test_one_result_per_frame(self):
        backend = FakePoseBackend(empty_frames={2, 3})
        results = estimate_keypoints(make_frames(6), backend)

        assert len(results) == 6
        assert [r.frame_index for r in results] == list(range(6))

    def test_missing_person_yields_empty_set(self):
        backend = FakePoseBackend(empty_frames={2})
        results = estimate_keypoints(make_frames(4), backend)

        assert not results[2].is_valid
        assert results[2].keypoints == []
        assert results[2].overall_score == 0.0
        assert results[1].is_valid

    def test_frames_processed_in_order(self):
        backend = FakePoseBackend()
        estimate_keypoints(make_frames(5), backend)
        assert backend.processed == [0, 1, 2, 3, 4]

    def test_out_of_order_frame_rejected(self):
        frames = make_frames(3)
        backend = FakePoseBackend()
        with pytest.raises(ValueError, match="in order"):
            estimate_keypoints([frames[0], frames[2], frames[1]], backend)
        assert not backend.in_use

    def test_backend_acquired_once_and_released(self):
        backend = FakePoseBackend()
        with KeypointProvider(backend) as provider:
            assert backend.in_use
            provider.estimate(make_frames(3))
        assert backend.initialize_calls == 1
        assert backend.cleanup_calls == 1
        assert not backend.in_use

    def test_backend_released_on_error(self):
        backend = FakePoseBackend(fail_on_frame=2)
        with pytest.raises(RuntimeError, match="inference crashed"):
            estimate_keypoints(make_frames(5), backend)
        assert backend.cleanup_calls == 1
        assert not backend.in_use

    def test_exclusive_ownership(self):
        backend = FakePoseBackend()
        with KeypointProvider(backend):
            with pytest.raises(KeypointProviderBusyError):
                KeypointProvider(backend).acquire()

    def test_backend_reusable_after_release(self):
        backend = FakePoseBackend()
        estimate_keypoints(make_frames(2), backend)
        results = estimate_keypoints(make_frames(2), backend)
        assert len(results) == 2
        assert backend.initialize_calls == 2

    def test_estimate_requires_acquisition(self):
        provider = KeypointProvider(FakePoseBackend())
        with pytest.raises(RuntimeError):
            provider.estimate_frame(make_frames(1)[0])


class TestPoseKeypointSet:

    def test_empty_placeholder(self):
        empty = PoseKeypointSet.empty(7, 70.0, "fake")
        assert empty.frame_index == 7
        assert empty.timestamp_ms == 70.0
        assert not empty.is_valid
        assert empty.segment_vector("left_hip", "right_hip") is None
        assert empty.keypoint_array().shape == (0, 3)


class TestBackendFactory:

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown pose backend"):
            create_pose_backend("openpose")


class TestBackendClaim:

    def test_claimed_backend_rejects_provider(self):
        backend = FakePoseBackend()
        backend.claim()
        with pytest.raises(KeypointProviderBusyError, match="fake"):
            KeypointProvider(backend).acquire()
        assert backend.initialize_calls == 0

        backend.release_claim()
        assert not backend.in_use
        assert len(estimate_keypoints(make_frames(2), backend)) == 2

    def test_double_claim_rejected(self):
        backend = FakePoseBackend()
        backend.claim()
        with pytest.raises(KeypointProviderBusyError):
            backend.claim()
        assert backend.in_use
