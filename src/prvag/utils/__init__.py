"""Utility functions and helpers for rotations, logging and configuration.

Graph file I/O lives in :mod:`prvag.utils.io` and is imported from there
directly, since it depends on :mod:`prvag.pose_graph`.
"""

from .conversions import (
    quaternion_to_rot3,
    rot3_to_quaternion,
    rot3_to_rotation_vector,
    rotation_matrix_to_rot3,
    rotation_vector_to_rot3,
)
from .log import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "quaternion_to_rot3",
    "rot3_to_quaternion",
    "rot3_to_rotation_vector",
    "rotation_matrix_to_rot3",
    "rotation_vector_to_rot3",
]
