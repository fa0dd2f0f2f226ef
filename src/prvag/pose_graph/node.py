"""PRVAG state and vertex representation using GTSAM.

A PRVAG state stacks position, rotation, velocity, accelerometer bias and
gyroscope bias. Its 15-dimensional tangent space is laid out as five 3-blocks
at the offsets below; the IMU pre-integration edge uses the same layout for
its measurement and residual.
"""

from dataclasses import dataclass
from typing import Iterator, Optional, TextIO

import gtsam
import numpy as np
import numpy.typing as npt

from ..utils.conversions import rot3_to_rotation_vector, rotation_vector_to_rot3
from .tokens import format_floats, iter_tokens, read_floats

# Block offsets in the 15-dimensional state / measurement / residual layout
INDEX_P = 0
INDEX_R = 3
INDEX_V = 6
INDEX_A = 9
INDEX_G = 12

STATE_DIMENSION = 15


def _block(v: npt.NDArray[np.float64], index: int) -> npt.NDArray[np.float64]:
    return v[index : index + 3]


@dataclass(eq=False)
class PRVAGState:
    """Navigation state: position, orientation, velocity and IMU biases.

    Orientation is a ``gtsam.Rot3`` and is only ever composed with other
    rotations, never added as a vector. Instances are treated as immutable
    values; updates produce a new state.
    """

    pos: npt.NDArray[np.float64]  # position in world frame (m)
    ori: gtsam.Rot3  # body-to-world rotation
    vel: npt.NDArray[np.float64]  # velocity in world frame (m/s)
    b_a: npt.NDArray[np.float64]  # accelerometer bias
    b_g: npt.NDArray[np.float64]  # gyroscope bias

    def __post_init__(self) -> None:
        """Validate state data."""
        for name in ("pos", "vel", "b_a", "b_g"):
            value = np.array(getattr(self, name), dtype=np.float64)
            if value.shape != (3,):
                raise ValueError(f"State component '{name}' must be a 3D vector")
            setattr(self, name, value)

        if not isinstance(self.ori, gtsam.Rot3):
            raise TypeError("Orientation must be a gtsam.Rot3")

    @staticmethod
    def identity() -> "PRVAGState":
        """State at the origin, at rest, with zero biases."""
        return PRVAGState(
            pos=np.zeros(3),
            ori=gtsam.Rot3(),
            vel=np.zeros(3),
            b_a=np.zeros(3),
            b_g=np.zeros(3),
        )

    def oplus(self, delta: npt.NDArray[np.float64]) -> "PRVAGState":
        """Apply a tangent-space increment.

        Position, velocity and biases are updated additively, orientation by
        right-composition with the exponential of the rotation block.

        Args:
            delta: 15-dimensional increment in P/R/V/A/G layout.

        Returns:
            The updated state.
        """
        delta = np.asarray(delta, dtype=np.float64)
        if delta.shape != (STATE_DIMENSION,):
            raise ValueError("State increment must be a 15D vector")

        return PRVAGState(
            pos=self.pos + _block(delta, INDEX_P),
            ori=self.ori.compose(gtsam.Rot3.Expmap(_block(delta, INDEX_R))),
            vel=self.vel + _block(delta, INDEX_V),
            b_a=self.b_a + _block(delta, INDEX_A),
            b_g=self.b_g + _block(delta, INDEX_G),
        )

    def to_vector(self) -> npt.NDArray[np.float64]:
        """Flatten to 15 values, orientation as a rotation vector.

        Returns:
            15-dimensional vector in P/R/V/A/G layout.
        """
        v = np.zeros(STATE_DIMENSION)
        v[INDEX_P : INDEX_P + 3] = self.pos
        v[INDEX_R : INDEX_R + 3] = rot3_to_rotation_vector(self.ori)
        v[INDEX_V : INDEX_V + 3] = self.vel
        v[INDEX_A : INDEX_A + 3] = self.b_a
        v[INDEX_G : INDEX_G + 3] = self.b_g
        return v

    @staticmethod
    def from_vector(v: npt.NDArray[np.float64]) -> "PRVAGState":
        """Create a state from 15 values in P/R/V/A/G layout.

        Args:
            v: 15-dimensional vector, orientation as a rotation vector.

        Returns:
            PRVAGState instance.
        """
        v = np.asarray(v, dtype=np.float64)
        if v.shape != (STATE_DIMENSION,):
            raise ValueError("State vector must be a 15D vector")

        return PRVAGState(
            pos=_block(v, INDEX_P),
            ori=rotation_vector_to_rot3(_block(v, INDEX_R)),
            vel=_block(v, INDEX_V),
            b_a=_block(v, INDEX_A),
            b_g=_block(v, INDEX_G),
        )

    def to_gtsam(
        self,
    ) -> tuple[gtsam.Pose3, npt.NDArray[np.float64], gtsam.imuBias.ConstantBias]:
        """Convert to the GTSAM values used by a navigation factor graph.

        Returns:
            Tuple of (pose, velocity, bias).
        """
        pose = gtsam.Pose3(self.ori, self.pos)
        bias = gtsam.imuBias.ConstantBias(self.b_a, self.b_g)
        return pose, self.vel.copy(), bias

    @staticmethod
    def from_gtsam(
        pose: gtsam.Pose3,
        velocity: npt.NDArray[np.float64],
        bias: gtsam.imuBias.ConstantBias,
    ) -> "PRVAGState":
        """Create a state from GTSAM pose, velocity and bias.

        Args:
            pose: GTSAM Pose3.
            velocity: Velocity in world frame.
            bias: GTSAM ConstantBias (accelerometer, gyroscope).

        Returns:
            PRVAGState instance.
        """
        return PRVAGState(
            pos=np.asarray(pose.translation(), dtype=np.float64),
            ori=pose.rotation(),
            vel=np.asarray(velocity, dtype=np.float64).reshape(3),
            b_a=np.asarray(bias.accelerometer(), dtype=np.float64),
            b_g=np.asarray(bias.gyroscope(), dtype=np.float64),
        )


class PRVAGVertex:
    """Graph vertex holding the current PRVAG estimate.

    Vertices are owned by a :class:`~prvag.pose_graph.graph.PoseGraph`; edges
    refer to them by id.
    """

    DIMENSION = STATE_DIMENSION

    def __init__(
        self,
        vertex_id: int,
        estimate: Optional[PRVAGState] = None,
        fixed: bool = False,
    ) -> None:
        """Initialize vertex.

        Args:
            vertex_id: Unique vertex identifier.
            estimate: Initial estimate. Defaults to the identity state.
            fixed: Whether the optimizer must keep this vertex constant.
        """
        self._id = vertex_id
        self._estimate = estimate if estimate is not None else PRVAGState.identity()
        self.fixed = fixed

    @property
    def id(self) -> int:
        return self._id

    @property
    def estimate(self) -> PRVAGState:
        return self._estimate

    def set_estimate(self, estimate: PRVAGState) -> None:
        self._estimate = estimate

    def oplus(self, delta: npt.NDArray[np.float64]) -> None:
        """Update the estimate by a 15-dimensional tangent increment."""
        self._estimate = self._estimate.oplus(delta)

    def read_tokens(self, tokens: Iterator[str]) -> bool:
        """Read the estimate from 15 tokens (see :meth:`write`)."""
        self.set_estimate(PRVAGState.from_vector(read_floats(tokens, STATE_DIMENSION, "vertex")))
        return True

    def read(self, stream: TextIO) -> bool:
        """Read the estimate from a text stream.

        Args:
            stream: Stream positioned at the 15 estimate tokens.

        Returns:
            True on success.

        Raises:
            RecordParseError: If the record is truncated or malformed.
        """
        return self.read_tokens(iter_tokens(stream))

    def write(self, stream: TextIO) -> bool:
        """Write the estimate as 15 tokens in P/R/V/A/G order.

        Args:
            stream: Output text stream.

        Returns:
            False if the stream is closed, True otherwise.
        """
        if stream.closed:
            return False
        stream.write(format_floats(self._estimate.to_vector()))
        return True

    def __repr__(self) -> str:
        return f"PRVAGVertex(id={self._id}, fixed={self.fixed})"
