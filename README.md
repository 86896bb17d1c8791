# pathmpc

Model predictive control for following a path with a car-like vehicle.

The vehicle is modelled as a kinematic bicycle. The reference path is
moved into the vehicle frame and fitted with a cubic polynomial. An
optimiser (SciPy's SLSQP) then picks a steering angle and a target speed
for each step of a finite horizon. The cost penalises cross-track error,
heading error, the gap between speed and target speed, large steering,
distance from the reference speed, and sudden changes in steering or
target speed.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Modules

- `pathmpc.polynomial`
  - `polyfit(xvals, yvals, order)` fits a polynomial by least squares.
    It raises `ValueError` when the point counts differ or when `order`
    is not between 1 and one less than the number of points.
  - `polyeval(coeffs, x)` evaluates one.
  - Coefficients run from the constant term upwards.
- `pathmpc.mpc`: the optimiser.
  - `MPCParams` holds the settings, all with defaults:
    - `steps` (50) is the horizon.
    - `dt` (0.1) is the time step.
    - `k_v` (0.4) is the speed gain.
    - `ref_v` (20.0) is the reference speed.
    - `lf` (1.5) is the front axle distance.
    - `steer_lower`/`steer_upper` (±0.6981 rad) bound the steering.
    - `speed_lower`/`speed_upper` (0–20) bound the target speed.
    - `max_iterations` and `tolerance` control the solver.
    - It raises `ValueError` for fewer than 2 steps or a zero `lf`.
  - `CostWeights` holds the weight of each term of the cost.
  - `MPC(params, weights)` builds the problem.
    - `MPC.solve(state, coeffs)` takes a six-value state
      `(x, y, psi, v, cte, epsi)` and path coefficients. It returns a
      `Solution`, which holds:
      - the first `delta` and `v_target`;
      - the predicted `xs` and `ys`;
      - the final `cost`;
      - a `success` flag.
    - `MPC.objective` and `MPC.constraints` evaluate the cost and the
      model constraints for a decision vector.
    - `MPC.predict_future_state(velocity, delta, cte, epsi,
      target_velocity, dt)` moves the vehicle-frame state forward by one
      step. This makes up for the delay before actuation.
- `pathmpc.controller`
  - `PathTracker` is the tracking loop.
    - It takes odometry with `on_odometry(stamp, x, y, z)`. This returns a
      map-to-`base_link` `Transform` and updates a speed estimate when
      the odometry interval is between 0.04 s and 0.2 s.
    - It takes heading with `on_imu(x, y, z, w)`.
    - It takes the local path with `on_path(points)`. Each point is a
      `Point` or an `(x, y)` / `(x, y, z)` sequence.
    - It takes the mission state with `on_state`.
    - `closest_waypoint(x, y)` finds the nearest waypoint within 10 m.
    - `step()` returns a `ControlOutput` or `None`. The output holds:
      - a `ControlCommand` with the speed in km/h, the steering with its
        sign flipped, and longitudinal mode 2;
      - the predicted path in the vehicle frame;
      - the state the solve started from;
      - the cost.
  - Helper functions: `yaw_from_quaternion`, `quaternion_from_yaw`,
    `plane_distance`, `speed_between` and `accel_between`.

## Example

```python
from pathmpc.mpc import MPC, MPCParams, CostWeights
from pathmpc.controller import PathTracker, Point

mpc = MPC(MPCParams(steps=10), CostWeights())
tracker = PathTracker(mpc)

tracker.on_path([Point(float(i), 0.1 * i) for i in range(20)])
tracker.on_imu(0.0, 0.0, 0.0, 1.0)
tracker.on_odometry(0.0, 0.0, 0.0, 0.0)
tracker.on_odometry(0.1, 0.5, 0.0, 0.0)

output = tracker.step()
if output is not None:
    print(output.command.velocity, output.command.steering)
```

`step()` solves a new problem only when pose, heading and path have all
been received. It then clears the pose and heading flags. Feed fresh
odometry and IMU data before each call. After the first solve, a step
that lacks fresh data repeats the last command without a new
prediction.

## What it does not do

The package does no messaging and no timing of its own:

- it does not subscribe to sensor topics;
- it does not publish commands, paths or transforms;
- it does not run a control loop at a fixed rate.

The caller feeds in the inputs, calls `step()` at its own rate and
sends the returned command and transform wherever they need to go.
Cost weights and parameters are passed in as `CostWeights` and
`MPCParams`. They are not read from a parameter server or a
configuration file.