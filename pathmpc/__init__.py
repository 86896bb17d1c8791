"""Model predictive path tracking for a kinematic bicycle model: polynomial path fitting, the MPC optimiser and a tracking loop."""

__version__ = "0.1.0"
__all__ = ["controller", "mpc", "polynomial"]