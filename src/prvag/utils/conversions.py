"""Rotation conversion utilities with GTSAM Rot3 support.

Orientations are handled as ``gtsam.Rot3`` everywhere in the package. These
helpers convert them to and from the flat numeric forms used in text records
and by callers that work with quaternions or plain matrices.
"""

import gtsam
import numpy as np
import numpy.typing as npt


def rotation_vector_to_rot3(theta: npt.NDArray[np.float64]) -> gtsam.Rot3:
    """Convert a rotation vector (axis * angle) to GTSAM Rot3.

    Args:
        theta: Rotation vector [rx, ry, rz] in radians.

    Returns:
        GTSAM Rot3 object.
    """
    theta = np.asarray(theta, dtype=np.float64).reshape(3)
    return gtsam.Rot3.Expmap(theta)


def rot3_to_rotation_vector(rotation: gtsam.Rot3) -> npt.NDArray[np.float64]:
    """Convert GTSAM Rot3 to a rotation vector.

    Args:
        rotation: GTSAM Rot3 object.

    Returns:
        Rotation vector [rx, ry, rz] with angle in [0, pi].
    """
    return np.asarray(gtsam.Rot3.Logmap(rotation), dtype=np.float64)


def quaternion_to_rot3(q: npt.NDArray[np.float64]) -> gtsam.Rot3:
    """Convert quaternion to GTSAM Rot3.

    Args:
        q: Quaternion as [w, x, y, z].

    Returns:
        GTSAM Rot3 object.
    """
    q = q / np.linalg.norm(q)  # Normalize
    w, x, y, z = q
    return gtsam.Rot3.Quaternion(float(w), float(x), float(y), float(z))


def rot3_to_quaternion(rotation: gtsam.Rot3) -> npt.NDArray[np.float64]:
    """Convert GTSAM Rot3 to quaternion.

    Args:
        rotation: GTSAM Rot3 object.

    Returns:
        Quaternion as [w, x, y, z] with non-negative w.
    """
    quat = rotation.toQuaternion()
    q = np.array([quat.w(), quat.x(), quat.y(), quat.z()], dtype=np.float64)
    # q and -q represent the same rotation
    if q[0] < 0:
        q = -q
    return q


def rotation_matrix_to_rot3(R: npt.NDArray[np.float64]) -> gtsam.Rot3:
    """Convert a 3x3 rotation matrix to GTSAM Rot3.

    Args:
        R: 3x3 rotation matrix.

    Returns:
        GTSAM Rot3 object.
    """
    if R.shape != (3, 3):
        raise ValueError("Rotation matrix must be 3x3")
    # Ensure rotation matrix is contiguous and float64 for GTSAM
    return gtsam.Rot3(np.ascontiguousarray(R, dtype=np.float64))
