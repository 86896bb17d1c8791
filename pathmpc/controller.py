"""Path tracking node logic: turns odometry, IMU and path input into drive commands."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import numpy as np

from pathmpc.mpc import MPC
from pathmpc.polynomial import polyeval, polyfit

logger = logging.getLogger(__name__)

MAX_SEARCH_DIST = 10.0
SPEED_DT_MIN = 0.04
SPEED_DT_MAX = 0.2
INTER_SPEED_TIME_MAX = 3600000000
CONTROL_DT = 0.1
FIT_ORDER = 3
LONGITUDINAL_VELOCITY_MODE = 2
MPS_TO_KMH = 3.6


@dataclass(frozen=True)
class Point:
    """A position in the plane, with an optional height."""

    x: float
    y: float
    z: float = 0.0


@dataclass(frozen=True)
class Transform:
    """Pose of the vehicle frame relative to the map frame."""

    stamp: float
    frame_id: str
    child_frame_id: str
    translation: Point
    rotation: tuple[float, float, float, float]


@dataclass(frozen=True)
class ControlCommand:
    """Longitudinal mode, speed in km/h and steering angle sent to the vehicle."""

    longl_cmd_type: int
    velocity: float
    steering: float


@dataclass(frozen=True)
class ControlOutput:
    """What one control step publishes.

    ``predicted_path`` and ``state`` are empty/None when the step did not
    solve a new problem and only repeated the previous command.
    """

    command: ControlCommand
    predicted_path: tuple[Point, ...] = ()
    state: np.ndarray | None = None
    cost: float | None = None


def yaw_from_quaternion(x: float, y: float, z: float, w: float) -> float:
    """Yaw angle of the rotation given by a (not necessarily unit) quaternion."""
    d = x * x + y * y + z * z + w * w
    if d == 0:
        raise ValueError("the zero quaternion describes no rotation")
    s = 2.0 / d
    m20 = s * (x * z - w * y)
    if abs(m20) >= 1.0:
        return 0.0
    m00 = 1.0 - s * (y * y + z * z)
    m10 = s * (x * y + w * z)
    return math.atan2(m10, m00)


def quaternion_from_yaw(yaw: float) -> tuple[float, float, float, float]:
    """Unit quaternion (x, y, z, w) for a pure rotation about the z axis."""
    half = yaw / 2.0
    return (0.0, 0.0, math.sin(half), math.cos(half))


def plane_distance(a: Point, b: Point) -> float:
    """Distance between two points, ignoring height."""
    return math.hypot(a.x - b.x, a.y - b.y)


def speed_between(ex_x: float, ex_y: float, cur_x: float, cur_y: float, dt: float) -> float:
    """Average speed between two positions reached ``dt`` seconds apart."""
    if dt == 0:
        raise ValueError("dt must be non-zero")
    return math.hypot(cur_x - ex_x, cur_y - ex_y) / dt


def accel_between(
    ex_x: float, ex_y: float, cur_x: float, cur_y: float, inter_time: float
) -> float:
    """Acceleration estimate from a displacement over ``inter_time`` nanosecond ticks."""
    if inter_time == 0:
        raise ValueError("inter_time must be non-zero")
    speed = math.hypot(cur_x - ex_x, cur_y - ex_y) / inter_time
    return speed / inter_time * INTER_SPEED_TIME_MAX


def _as_point(value: Point | Sequence[float]) -> Point:
    if isinstance(value, Point):
        return value
    coords = [float(c) for c in value]
    if len(coords) not in (2, 3):
        raise ValueError(f"a waypoint needs 2 or 3 coordinates, got {len(coords)}")
    return Point(*coords)


@dataclass
class PathTracker:
    """Keeps the latest sensor input and runs the MPC once per control step."""

    mpc: MPC
    position: Point = field(default_factory=lambda: Point(0.0, 0.0, 0.0))
    course: float = 0.0
    speed: float = 0.0
    prev_x: float = 0.0
    prev_y: float = 0.0
    prev_stamp: float = 0.0
    waypoints: list[Point] = field(default_factory=list)
    closest_index: int = -1
    dist: float = 100.0
    mission_state: int = -1
    lane_number: int = 0
    steering_angle: float = 0.0
    target_velocity: float = 0.0
    has_pose: bool = False
    has_lane: bool = False
    has_course: bool = False
    controlling: bool = False

    def __init__(self, mpc: MPC | None = None):
        self.mpc = mpc if mpc is not None else MPC()
        self.position = Point(0.0, 0.0, 0.0)
        self.course = 0.0
        self.speed = 0.0
        self.prev_x = 0.0
        self.prev_y = 0.0
        self.prev_stamp = 0.0
        self.waypoints = []
        self.closest_index = -1
        self._waypoint_min = -1
        self.dist = 100.0
        self.mission_state = -1
        self.lane_number = 0
        self.steering_angle = 0.0
        self.target_velocity = 0.0
        self.has_pose = False
        self.has_lane = False
        self.has_course = False
        self.controlling = False

    def on_odometry(self, stamp: float, x: float, y: float, z: float = 0.0) -> Transform:
        """Record a new position, update the speed estimate and return the vehicle transform."""
        self.position = Point(float(x), float(y), float(z))
        transform = self.broadcast_transform()
        dt = stamp - self.prev_stamp
        if dt < 0:
            dt = CONTROL_DT
        if SPEED_DT_MIN < dt < SPEED_DT_MAX:
            self.speed = speed_between(self.prev_x, self.prev_y, x, y, dt)
        self.prev_stamp = stamp
        self.prev_x = self.position.x
        self.prev_y = self.position.y
        self.has_pose = True
        return transform

    def on_path(self, points: Iterable[Point | Sequence[float]]) -> None:
        """Replace the local path with new waypoints."""
        self.waypoints = [_as_point(p) for p in points]
        self.has_lane = bool(self.waypoints)

    def on_state(self, dist: float, current_state: int, lane_number: int) -> None:
        """Record the mission state reported by the planner."""
        self.dist = dist
        self.mission_state = current_state
        self.lane_number = lane_number

    def on_imu(self, x: float, y: float, z: float, w: float) -> None:
        """Take the heading from an orientation quaternion."""
        self.course = yaw_from_quaternion(x, y, z, w)
        self.has_course = True

    def broadcast_transform(self) -> Transform:
        """Map-to-vehicle transform from the current position and heading."""
        return Transform(
            stamp=time.time(),
            frame_id="map",
            child_frame_id="base_link",
            translation=self.position,
            rotation=quaternion_from_yaw(self.course),
        )

    def closest_waypoint(self, x: float, y: float) -> int:
        """Index of the nearest waypoint within the search radius.

        When no waypoint is close enough the previously found index is kept;
        -1 means none has been found yet.
        """
        if not self.waypoints:
            logger.warning("------ NO CLOSEST WAYPOINT -------")
            return self.closest_index
        here = Point(x, y)
        dist_min = MAX_SEARCH_DIST
        for index, waypoint in enumerate(self.waypoints):
            d = plane_distance(here, waypoint)
            if d < dist_min:
                dist_min = d
                self._waypoint_min = index
        self.closest_index = self._waypoint_min
        return self.closest_index

    def _vehicle_frame_path(self, px: float, py: float, psi: float) -> tuple[np.ndarray, np.ndarray]:
        pts = np.array([(p.x, p.y) for p in self.waypoints], dtype=float)
        diff_x = pts[:, 0] - px
        diff_y = pts[:, 1] - py
        cos_, sin_ = math.cos(-psi), math.sin(-psi)
        return diff_x * cos_ - diff_y * sin_, diff_y * cos_ + diff_x * sin_

    def step(self) -> ControlOutput | None:
        """Run one control cycle; returns None when there is nothing to send."""
        self.closest_waypoint(self.position.x, self.position.y)
        predicted: tuple[Point, ...] = ()
        state: np.ndarray | None = None
        cost: float | None = None

        if self.has_pose and self.has_course and self.has_lane:
            self.controlling = True
            velocity = self.speed
            xs, ys = self._vehicle_frame_path(self.prev_x, self.prev_y, self.course)
            coeffs = polyfit(xs, ys, FIT_ORDER)
            cte = polyeval(coeffs, 0.0)
            epsi = -math.atan(coeffs[1])
            state = self.mpc.predict_future_state(
                velocity, self.steering_angle, cte, epsi, self.target_velocity, CONTROL_DT
            )
            solution = self.mpc.solve(state, coeffs)
            self.steering_angle = solution.delta
            self.target_velocity = solution.v_target
            cost = solution.cost
            predicted = tuple(Point(px, py, 0.0) for px, py in zip(solution.xs, solution.ys))
            self._log_step(state, velocity, cost)

        output = None
        if self.controlling:
            command = ControlCommand(
                longl_cmd_type=LONGITUDINAL_VELOCITY_MODE,
                velocity=self.target_velocity * MPS_TO_KMH,
                steering=-self.steering_angle,
            )
            output = ControlOutput(command=command, predicted_path=predicted, state=state, cost=cost)
        self.has_pose = False
        self.has_course = False
        return output

    def _log_step(self, state: np.ndarray, velocity: float, cost: float) -> None:
        w, p = self.mpc.weights, self.mpc.params
        logger.info(
            "\n-----cost_weight-----\n"
            "cte: %.2f\nepsi: %.2f\nv: %.2f\ndelta: %.2f\nv_target: %.2f\n"
            "delta_change: %.2f\nv_target_change: %.2f\nhorizon: %d\n"
            "---------------------\n\n-----info-----\n"
            "referance_vel: %.2f\nk_v: %.2f\ndt: %.2f\n---------------------\n\n"
            "Initial State:\nx: %.2f, y: %.2f\npsi: %.2f, v: %.2f\ncte: %.2f, epsi: %.2f\n\n"
            "Steering Angle: %.2f rad\nTarget Velocity: %.2f m/s\n"
            "Current Speed: %.2f km/h\nCurrent Velocity: %.2f m/s\nCost: %.3f\n"
            "---------------------",
            w.cte, w.epsi, w.v, w.delta, w.v_target, w.delta_change, w.v_target_change,
            p.steps, p.ref_v, p.k_v, p.dt,
            *(float(s) for s in state),
            self.steering_angle, self.target_velocity,
            self.speed * MPS_TO_KMH, velocity, cost,
        )