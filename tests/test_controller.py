import math

import pytest

from pathmpc.controller import (
    ControlCommand,
    PathTracker,
    Point,
    accel_between,
    plane_distance,
    quaternion_from_yaw,
    speed_between,
    yaw_from_quaternion,
)
from pathmpc.mpc import MPC, MPCParams


@pytest.fixture
def tracker():
    return PathTracker(MPC(MPCParams(steps=5)))


def _ready(tracker, points, yaw=0.0, pos=(0.0, 0.0)):
    tracker.on_odometry(1.0, *pos)
    tracker.on_imu(*quaternion_from_yaw(yaw))
    tracker.on_path(points)


@pytest.mark.parametrize("yaw", [0.0, 0.7, -1.2, 3.0])
def test_yaw_quaternion_round_trip(yaw):
    assert yaw_from_quaternion(*quaternion_from_yaw(yaw)) == pytest.approx(yaw)


def test_quaternion_from_zero_yaw_is_identity():
    assert quaternion_from_yaw(0.0) == (0.0, 0.0, 0.0, 1.0)


def test_yaw_ignores_quaternion_scale():
    q = quaternion_from_yaw(0.5)
    assert yaw_from_quaternion(*(3 * c for c in q)) == pytest.approx(0.5)


def test_zero_quaternion_rejected():
    with pytest.raises(ValueError):
        yaw_from_quaternion(0.0, 0.0, 0.0, 0.0)


def test_plane_distance_ignores_height():
    assert plane_distance(Point(0, 0, 5), Point(3, 4, -2)) == pytest.approx(5.0)


def test_speed_between():
    assert speed_between(0.0, 0.0, 3.0, 4.0, 0.5) == pytest.approx(10.0)
    with pytest.raises(ValueError):
        speed_between(0.0, 0.0, 1.0, 1.0, 0.0)


def test_accel_between_scales_with_square_of_time():
    a1 = accel_between(0.0, 0.0, 3.0, 4.0, 100)
    a2 = accel_between(0.0, 0.0, 3.0, 4.0, 200)
    assert a1 == pytest.approx(4 * a2)
    with pytest.raises(ValueError):
        accel_between(0.0, 0.0, 1.0, 0.0, 0)


def test_odometry_speed_estimate(tracker):
    tracker.on_odometry(1.0, 0.0, 0.0)
    assert tracker.speed == 0.0
    tracker.on_odometry(1.1, 0.5, 0.0)
    assert tracker.speed == pytest.approx(5.0)
    assert (tracker.prev_x, tracker.prev_y) == (0.5, 0.0)
    assert tracker.has_pose


def test_odometry_backwards_stamp_uses_default_dt(tracker):
    tracker.on_odometry(2.0, 0.0, 0.0)
    tracker.on_odometry(1.0, 0.3, 0.4)
    assert tracker.speed == pytest.approx(5.0)


def test_odometry_slow_interval_keeps_speed(tracker):
    tracker.on_odometry(1.0, 0.0, 0.0)
    tracker.on_odometry(2.0, 10.0, 0.0)
    assert tracker.speed == 0.0


def test_broadcast_transform_uses_course(tracker):
    tracker.on_imu(*quaternion_from_yaw(0.8))
    transform = tracker.on_odometry(1.0, 2.0, 3.0, 1.0)
    assert transform.frame_id == "map"
    assert transform.child_frame_id == "base_link"
    assert transform.translation == Point(2.0, 3.0, 1.0)
    assert yaw_from_quaternion(*transform.rotation) == pytest.approx(0.8)


def test_on_path_and_state(tracker):
    tracker.on_path([(0, 0), (1, 2, 3), Point(4, 5)])
    assert tracker.waypoints == [Point(0, 0), Point(1, 2, 3), Point(4, 5)]
    assert tracker.has_lane
    tracker.on_path([])
    assert not tracker.has_lane
    tracker.on_state(12.5, 3, 2)
    assert (tracker.dist, tracker.mission_state, tracker.lane_number) == (12.5, 3, 2)


def test_on_path_rejects_bad_point(tracker):
    with pytest.raises(ValueError):
        tracker.on_path([(1.0,)])


def test_closest_waypoint(tracker):
    tracker.on_path([(i, 0) for i in range(10)])
    assert tracker.closest_waypoint(6.2, 0.5) == 6
    assert tracker.closest_index == 6


def test_closest_waypoint_keeps_previous_when_far(tracker):
    assert tracker.closest_waypoint(0.0, 0.0) == -1
    tracker.on_path([(0, 0), (1, 0)])
    assert tracker.closest_waypoint(100.0, 100.0) == -1
    assert tracker.closest_waypoint(1.1, 0.0) == 1
    assert tracker.closest_waypoint(100.0, 100.0) == 1


def test_step_without_input_returns_none(tracker):
    tracker.on_odometry(1.0, 0.0, 0.0)
    assert tracker.step() is None
    assert not tracker.controlling
    assert not tracker.has_pose


@pytest.mark.parametrize(
    "yaw, points",
    [
        (0.0, [(i, 0.0) for i in range(10)]),
        (math.pi / 2, [(0.0, i) for i in range(10)]),
    ],
)
def test_step_straight_path_keeps_wheel_straight(tracker, yaw, points):
    _ready(tracker, points, yaw=yaw)
    output = tracker.step()
    assert output.command.longl_cmd_type == 2
    assert abs(output.command.steering) < 1e-3
    assert output.command.velocity == pytest.approx(tracker.target_velocity * 3.6)
    assert output.command.steering == pytest.approx(-tracker.steering_angle)
    assert len(output.predicted_path) == 5
    assert all(p.z == 0.0 for p in output.predicted_path)
    assert 0.0 <= tracker.target_velocity <= 20.0
    assert not tracker.has_pose and not tracker.has_course


def test_step_offset_path_sets_cross_track_error(tracker):
    _ready(tracker, [(i, 1.0) for i in range(10)])
    output = tracker.step()
    assert output.state[4] == pytest.approx(1.0, abs=1e-6)
    assert output.state[5] == pytest.approx(0.0, abs=1e-6)


def test_step_repeats_last_command_without_new_input(tracker):
    _ready(tracker, [(i, 0.0) for i in range(10)])
    first = tracker.step()
    second = tracker.step()
    assert second.command == first.command
    assert second.predicted_path == ()
    assert second.state is None
    assert isinstance(second.command, ControlCommand)


def test_step_needs_enough_waypoints(tracker):
    _ready(tracker, [(0, 0), (1, 0), (2, 0)])
    with pytest.raises(ValueError):
        tracker.step()