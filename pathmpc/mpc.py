"""Kinematic model predictive controller for following a fitted cubic path."""

from __future__ import annotations

from dataclasses import dataclass, field
from collections.abc import Iterable

import numpy as np
from scipy.optimize import Bounds, minimize

_STATE_SIZE = 6


@dataclass(frozen=True)
class CostWeights:
    """Weights of the terms in the MPC cost function."""

    cte: float = 1000.0
    epsi: float = 1000.0
    v: float = 1.0
    delta: float = 500.0
    v_target: float = 1.0
    delta_change: float = 10000.0
    v_target_change: float = 1.0


@dataclass(frozen=True)
class MPCParams:
    """Horizon, vehicle model and actuator limits of the controller."""

    steps: int = 50
    dt: float = 0.1
    k_v: float = 0.4
    ref_v: float = 20.0
    lf: float = 1.5
    ref_cte: float = 0.0
    ref_epsi: float = 0.0
    steer_lower: float = -0.6981
    steer_upper: float = 0.6981
    speed_lower: float = 0.0
    speed_upper: float = 20.0
    max_iterations: int = 200
    tolerance: float = 1e-6

    def __post_init__(self) -> None:
        if self.steps < 2:
            raise ValueError(f"the horizon needs at least 2 steps, got {self.steps}")
        if self.lf == 0:
            raise ValueError("lf must be non-zero")


@dataclass(frozen=True)
class Solution:
    """First actuator values, predicted trajectory and final cost of a solve."""

    delta: float
    v_target: float
    xs: tuple[float, ...]
    ys: tuple[float, ...]
    cost: float
    success: bool


def _cubic(coeffs: Iterable[float]) -> np.ndarray:
    values = np.asarray(list(coeffs), dtype=float).ravel()[:4]
    return np.pad(values, (0, 4 - values.size))


@dataclass
class MPC:
    """Optimises steering and target speed over a finite horizon.

    The decision vector holds the states x, y, psi, v, cte and epsi for every
    step, followed by steering angles and target velocities for every step
    but the last.
    """

    params: MPCParams = field(default_factory=MPCParams)
    weights: CostWeights = field(default_factory=CostWeights)

    def __init__(self, params: MPCParams | None = None, weights: CostWeights | None = None):
        self.params = params if params is not None else MPCParams()
        self.weights = weights if weights is not None else CostWeights()
        n = self.params.steps
        self.x_start = 0
        self.y_start = n
        self.psi_start = 2 * n
        self.v_start = 3 * n
        self.cte_start = 4 * n
        self.epsi_start = 5 * n
        self.delta_start = 6 * n
        self.v_target_start = self.delta_start + n - 1
        self.n_vars = _STATE_SIZE * n + 2 * (n - 1)
        self.n_constraints = _STATE_SIZE * n
        self.cost = 0.0

    @property
    def _state_starts(self) -> list[int]:
        return [
            self.x_start,
            self.y_start,
            self.psi_start,
            self.v_start,
            self.cte_start,
            self.epsi_start,
        ]

    def _check_vars(self, variables: Iterable[float]) -> np.ndarray:
        z = np.asarray(variables, dtype=float).ravel()
        if z.size != self.n_vars:
            raise ValueError(f"expected {self.n_vars} variables, got {z.size}")
        return z

    def objective(self, variables: Iterable[float], coeffs: Iterable[float]) -> float:
        """Cost of a decision vector; the path coefficients do not enter it."""
        z = self._check_vars(variables)
        n = self.params.steps
        p, w = self.params, self.weights
        cte = z[self.cte_start:self.cte_start + n]
        epsi = z[self.epsi_start:self.epsi_start + n]
        v = z[self.v_start:self.v_start + n]
        lagged_target = z[self.v_target_start - 1:self.v_target_start - 1 + n]
        delta = z[self.delta_start:self.v_target_start]
        v_target = z[self.v_target_start:]

        cost = w.cte * np.sum((cte - p.ref_cte) ** 2)
        cost += w.epsi * np.sum((epsi - p.ref_epsi) ** 2)
        cost += w.v * np.sum((v - lagged_target) ** 2)
        cost += w.delta * np.sum(delta**2)
        cost += w.v_target * np.sum((v_target - p.ref_v) ** 2)
        cost += w.delta_change * np.sum(np.diff(delta) ** 2)
        cost += w.v_target_change * np.sum(np.diff(v_target) ** 2)
        return float(cost)

    def _objective_gradient(self, z: np.ndarray) -> np.ndarray:
        n = self.params.steps
        p, w = self.params, self.weights
        grad = np.zeros_like(z)
        cte_s = slice(self.cte_start, self.cte_start + n)
        epsi_s = slice(self.epsi_start, self.epsi_start + n)
        v_s = slice(self.v_start, self.v_start + n)
        lag_s = slice(self.v_target_start - 1, self.v_target_start - 1 + n)
        d_s = slice(self.delta_start, self.v_target_start)
        vt_s = slice(self.v_target_start, self.n_vars)

        grad[cte_s] += 2 * w.cte * (z[cte_s] - p.ref_cte)
        grad[epsi_s] += 2 * w.epsi * (z[epsi_s] - p.ref_epsi)
        residual = z[v_s] - z[lag_s]
        grad[v_s] += 2 * w.v * residual
        grad[lag_s] -= 2 * w.v * residual
        grad[d_s] += 2 * w.delta * z[d_s]
        grad[vt_s] += 2 * w.v_target * (z[vt_s] - p.ref_v)

        d_change = np.diff(z[d_s])
        grad[self.delta_start + 1:self.v_target_start] += 2 * w.delta_change * d_change
        grad[self.delta_start:self.v_target_start - 1] -= 2 * w.delta_change * d_change
        vt_change = np.diff(z[vt_s])
        grad[self.v_target_start + 1:self.n_vars] += 2 * w.v_target_change * vt_change
        grad[self.v_target_start:self.n_vars - 1] -= 2 * w.v_target_change * vt_change
        return grad

    def constraints(self, variables: Iterable[float], coeffs: Iterable[float]) -> np.ndarray:
        """Initial-state values followed by kinematic model residuals per step."""
        z = self._check_vars(variables)
        c = _cubic(coeffs)
        p = self.params
        n = p.steps
        x, y, psi, v, cte, epsi = (z[s:s + n] for s in self._state_starts)
        delta = z[self.delta_start:self.v_target_start]
        v_target = z[self.v_target_start:]

        x0, y0, psi0, v0, epsi0 = x[:-1], y[:-1], psi[:-1], v[:-1], epsi[:-1]
        f0 = c[0] + c[1] * x0 + c[2] * x0**2 + c[3] * x0**3
        psi_des0 = np.arctan(c[1] + 2 * c[2] * x0 + 3 * c[3] * x0**2)
        turn = v0 / p.lf * delta * p.dt

        g = np.empty(self.n_constraints)
        g[[s for s in self._state_starts]] = [x[0], y[0], psi[0], v[0], cte[0], epsi[0]]
        g[self.x_start + 1:self.x_start + n] = x[1:] - (x0 + v0 * np.cos(psi0) * p.dt)
        g[self.y_start + 1:self.y_start + n] = y[1:] - (y0 + v0 * np.sin(psi0) * p.dt)
        g[self.psi_start + 1:self.psi_start + n] = psi[1:] - (psi0 - turn)
        g[self.v_start + 1:self.v_start + n] = v[1:] - (v0 + p.k_v * (v_target - v0) * p.dt)
        g[self.cte_start + 1:self.cte_start + n] = cte[1:] - (
            (f0 - y0) + v0 * np.sin(epsi0) * p.dt
        )
        g[self.epsi_start + 1:self.epsi_start + n] = epsi[1:] - ((psi0 - psi_des0) - turn)
        return g

    def _constraint_jacobian(self, z: np.ndarray, c: np.ndarray) -> np.ndarray:
        p = self.params
        n = p.steps
        dt, lf, kv = p.dt, p.lf, p.k_v
        jac = np.zeros((self.n_constraints, self.n_vars))
        for start in self._state_starts:
            jac[start, start] = 1.0

        t = np.arange(1, n)
        prev = t - 1
        xs, ys, ps, vs, cs, es = self._state_starts
        ds, vts = self.delta_start, self.v_target_start
        x0 = z[xs + prev]
        psi0 = z[ps + prev]
        v0 = z[vs + prev]
        epsi0 = z[es + prev]
        d0 = z[ds + prev]
        slope = c[1] + 2 * c[2] * x0 + 3 * c[3] * x0**2
        curvature = 2 * c[2] + 6 * c[3] * x0

        def put(row_start: int, col: np.ndarray, values) -> None:
            jac[row_start + t, col] = values

        for start in self._state_starts:
            put(start, start + t, 1.0)

        put(xs, xs + prev, -1.0)
        put(xs, ps + prev, v0 * np.sin(psi0) * dt)
        put(xs, vs + prev, -np.cos(psi0) * dt)

        put(ys, ys + prev, -1.0)
        put(ys, ps + prev, -v0 * np.cos(psi0) * dt)
        put(ys, vs + prev, -np.sin(psi0) * dt)

        put(ps, ps + prev, -1.0)
        put(ps, vs + prev, d0 * dt / lf)
        put(ps, ds + prev, v0 * dt / lf)

        put(vs, vs + prev, -(1.0 - kv * dt))
        put(vs, vts + prev, -kv * dt)

        put(cs, xs + prev, -slope)
        put(cs, ys + prev, 1.0)
        put(cs, vs + prev, -np.sin(epsi0) * dt)
        put(cs, es + prev, -v0 * np.cos(epsi0) * dt)

        put(es, ps + prev, -1.0)
        put(es, xs + prev, curvature / (1.0 + slope**2))
        put(es, vs + prev, d0 * dt / lf)
        put(es, ds + prev, v0 * dt / lf)
        return jac

    def solve(self, state: Iterable[float], coeffs: Iterable[float]) -> Solution:
        """Optimise the horizon from ``state`` along the path given by ``coeffs``."""
        state_arr = np.asarray(list(state), dtype=float).ravel()
        if state_arr.size != _STATE_SIZE:
            raise ValueError(f"state must have {_STATE_SIZE} values, got {state_arr.size}")
        c = _cubic(coeffs)
        p = self.params
        n = p.steps
        starts = self._state_starts

        initial = np.zeros(self.n_vars)
        initial[starts] = state_arr

        lower = np.full(self.n_vars, -np.inf)
        upper = np.full(self.n_vars, np.inf)
        lower[self.delta_start:self.v_target_start] = p.steer_lower
        upper[self.delta_start:self.v_target_start] = p.steer_upper
        lower[self.v_target_start:] = p.speed_lower
        upper[self.v_target_start:] = p.speed_upper

        target = np.zeros(self.n_constraints)
        target[starts] = state_arr

        result = minimize(
            lambda z: self.objective(z, c),
            initial,
            jac=self._objective_gradient,
            bounds=Bounds(lower, upper),
            constraints=[
                {
                    "type": "eq",
                    "fun": lambda z: self.constraints(z, c) - target,
                    "jac": lambda z: self._constraint_jacobian(z, c),
                }
            ],
            method="SLSQP",
            options={"maxiter": p.max_iterations, "ftol": p.tolerance},
        )
        z = result.x
        self.cost = float(result.fun)
        return Solution(
            delta=float(z[self.delta_start]),
            v_target=float(z[self.v_target_start]),
            xs=tuple(float(v) for v in z[self.x_start:self.x_start + n]),
            ys=tuple(float(v) for v in z[self.y_start:self.y_start + n]),
            cost=self.cost,
            success=bool(result.success),
        )

    def predict_future_state(
        self,
        velocity: float,
        delta: float,
        cte: float,
        epsi: float,
        target_velocity: float,
        dt: float,
    ) -> np.ndarray:
        """Advance the vehicle-frame state one step with the kinematic model."""
        p = self.params
        px = velocity * dt
        py = 0.0
        psi = velocity * (-delta) * dt / p.lf
        v = velocity + p.k_v * (target_velocity - velocity) * dt
        next_cte = cte + velocity * np.sin(epsi) * dt
        next_epsi = epsi + psi
        return np.array([px, py, psi, v, next_cte, next_epsi], dtype=float)