"""PRVAG - IMU pre-integration factor for pose graph optimization.

A Python library providing the IMU pre-integration edge that binds two
consecutive navigation states (Position, Rotation, Velocity, Accelerometer
bias, Gyroscope bias) in a pose graph, with text serialization and a GTSAM
bridge for optimization.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
