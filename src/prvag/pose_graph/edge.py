"""IMU pre-integration edge between two PRVAG vertices.

The edge binds the states at two consecutive keyframes *i* and *j* through a
pre-integrated IMU measurement: a position delta ``alpha_ij``, a rotation
delta ``theta_ij`` (rotation vector), a velocity delta ``beta_ij`` and two
bias-delta blocks, laid out as in :mod:`prvag.pose_graph.node`.

Residual, in P/R/V/A/G layout::

    r_P = R_i^-1 (p_j - p_i - (v_i - 0.5 g T) T) - alpha_ij
    r_R = Log(Exp(theta_ij)^-1 R_i^-1 R_j)
    r_V = R_i^-1 (v_j - v_i + g T) - beta_ij
    r_A = b_a_j - b_a_i
    r_G = b_g_j - b_g_i

Only the residual is modelled analytically. Jacobians are obtained by
central differences, both for direct use and inside the GTSAM factor
produced by :meth:`EdgePRVAGIMUPreIntegration.to_gtsam_factor`.
"""

import io
from enum import Enum
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence, TextIO

import gtsam
import numpy as np
import numpy.typing as npt
from gtsam.symbol_shorthand import B, V, X

from .node import (
    INDEX_A,
    INDEX_G,
    INDEX_P,
    INDEX_R,
    INDEX_V,
    STATE_DIMENSION,
    PRVAGState,
    PRVAGVertex,
)
from .tokens import RecordParseError, format_floats, iter_tokens, read_floats

# Step used for central-difference Jacobians
_NUMERICAL_EPSILON = 1e-6


class EdgeType(Enum):
    """Type of edge constraint, valued by its graph file tag."""

    IMU_PRE_INTEGRATION = "EDGE_PRVAG_IMU_PRE_INTEGRATION"


class IMUPreIntegrationParseError(RecordParseError):
    """Raised when an IMU pre-integration record cannot be parsed."""


class EdgePRVAGIMUPreIntegration:
    """Binary edge with a 15-dimensional IMU pre-integration residual.

    The edge stores the ids of its two endpoint vertices, not the vertices
    themselves; they are looked up in the owning graph's vertex table each
    time the residual is evaluated.
    """

    DIMENSION = STATE_DIMENSION

    INDEX_P = INDEX_P
    INDEX_R = INDEX_R
    INDEX_V = INDEX_V
    INDEX_A = INDEX_A
    INDEX_G = INDEX_G

    # T, gravity, measurement, information upper triangle
    RECORD_SIZE = 1 + 3 + STATE_DIMENSION + STATE_DIMENSION * (STATE_DIMENSION + 1) // 2

    edge_type = EdgeType.IMU_PRE_INTEGRATION

    def __init__(
        self,
        vertex_i: Optional[int] = None,
        vertex_j: Optional[int] = None,
    ) -> None:
        """Initialize edge with zero T and gravity, identity information.

        Args:
            vertex_i: Id of the earlier vertex.
            vertex_j: Id of the later vertex.
        """
        self._vertices = (vertex_i, vertex_j)
        self._T = 0.0
        self._g = np.zeros(3)
        self._measurement = np.zeros(self.DIMENSION)
        self._information = np.eye(self.DIMENSION)
        self.error = np.zeros(self.DIMENSION)

    @property
    def vertices(self) -> tuple[Optional[int], Optional[int]]:
        return self._vertices

    def set_vertices(self, vertex_i: int, vertex_j: int) -> None:
        self._vertices = (vertex_i, vertex_j)

    @property
    def T(self) -> float:
        return self._T

    def set_t(self, T: float) -> None:
        """Set the time elapsed between the two vertices (s)."""
        self._T = float(T)

    @property
    def gravity(self) -> npt.NDArray[np.float64]:
        return self._g

    def set_gravity(self, g: npt.NDArray[np.float64]) -> None:
        """Set the gravity vector in the world frame.

        Args:
            g: Gravity vector.
        """
        g = np.array(g, dtype=np.float64)
        if g.shape != (3,):
            raise ValueError("Gravity must be a 3D vector")
        self._g = g

    @property
    def measurement(self) -> npt.NDArray[np.float64]:
        return self._measurement

    def set_measurement(self, m: npt.NDArray[np.float64]) -> None:
        """Set the pre-integrated measurement.

        Args:
            m: 15-dimensional measurement in P/R/V/A/G layout.
        """
        m = np.array(m, dtype=np.float64)
        if m.shape != (self.DIMENSION,):
            raise ValueError("Measurement must be a 15D vector")
        self._measurement = m

    @property
    def information(self) -> npt.NDArray[np.float64]:
        return self._information

    def set_information(self, information: npt.NDArray[np.float64]) -> None:
        """Set the 15x15 information matrix.

        Args:
            information: Inverse of the measurement covariance.
        """
        information = np.array(information, dtype=np.float64)
        if information.shape != (self.DIMENSION, self.DIMENSION):
            raise ValueError("Information matrix must be 15x15")
        self._information = information

    def evaluate(self, state_i: PRVAGState, state_j: PRVAGState) -> npt.NDArray[np.float64]:
        """Compute the residual for a pair of states.

        Args:
            state_i: State at the earlier keyframe.
            state_j: State at the later keyframe.

        Returns:
            15-dimensional residual in P/R/V/A/G layout.
        """
        T = self._T
        g = self._g

        alpha_ij = self._measurement[INDEX_P : INDEX_P + 3]
        theta_ij = self._measurement[INDEX_R : INDEX_R + 3]
        beta_ij = self._measurement[INDEX_V : INDEX_V + 3]

        ori_i_inv = state_i.ori.inverse()

        error = np.zeros(self.DIMENSION)
        error[INDEX_P : INDEX_P + 3] = (
            ori_i_inv.rotate(state_j.pos - state_i.pos - (state_i.vel - 0.5 * g * T) * T)
            - alpha_ij
        )
        error[INDEX_R : INDEX_R + 3] = gtsam.Rot3.Logmap(
            gtsam.Rot3.Expmap(theta_ij).inverse().compose(ori_i_inv).compose(state_j.ori)
        )
        error[INDEX_V : INDEX_V + 3] = (
            ori_i_inv.rotate(state_j.vel - state_i.vel + g * T) - beta_ij
        )
        error[INDEX_A : INDEX_A + 3] = state_j.b_a - state_i.b_a
        error[INDEX_G : INDEX_G + 3] = state_j.b_g - state_i.b_g

        return error

    def _endpoint_states(
        self, vertices: Mapping[int, PRVAGVertex]
    ) -> tuple[PRVAGState, PRVAGState]:
        vertex_i, vertex_j = self._vertices
        if vertex_i is None or vertex_j is None:
            raise ValueError("Edge endpoints are not set")
        return vertices[vertex_i].estimate, vertices[vertex_j].estimate

    def compute_error(self, vertices: Mapping[int, PRVAGVertex]) -> npt.NDArray[np.float64]:
        """Evaluate the residual at the current vertex estimates.

        The result is also stored in :attr:`error`.

        Args:
            vertices: Vertex table the endpoint ids refer to.

        Returns:
            15-dimensional residual.
        """
        self.error = self.evaluate(*self._endpoint_states(vertices))
        return self.error

    def chi2(self) -> float:
        """Weighted squared norm of the last computed residual."""
        return float(self.error @ self._information @ self.error)

    def numerical_jacobians(
        self,
        vertices: Mapping[int, PRVAGVertex],
        eps: float = _NUMERICAL_EPSILON,
    ) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """Central-difference Jacobians of the residual.

        Derivatives are taken with respect to the tangent increment of each
        endpoint under :meth:`PRVAGState.oplus`.

        Args:
            vertices: Vertex table the endpoint ids refer to.
            eps: Finite-difference step.

        Returns:
            Tuple of (J_i, J_j), each 15x15.
        """
        state_i, state_j = self._endpoint_states(vertices)

        J_i = np.zeros((self.DIMENSION, STATE_DIMENSION))
        J_j = np.zeros((self.DIMENSION, STATE_DIMENSION))
        for k in range(STATE_DIMENSION):
            delta = np.zeros(STATE_DIMENSION)
            delta[k] = eps
            J_i[:, k] = (
                self.evaluate(state_i.oplus(delta), state_j)
                - self.evaluate(state_i.oplus(-delta), state_j)
            ) / (2.0 * eps)
            J_j[:, k] = (
                self.evaluate(state_i, state_j.oplus(delta))
                - self.evaluate(state_i, state_j.oplus(-delta))
            ) / (2.0 * eps)

        return J_i, J_j

    def to_gtsam_factor(self) -> gtsam.CustomFactor:
        """Convert to a GTSAM CustomFactor.

        Each endpoint contributes a pose key ``X(id)``, a velocity key
        ``V(id)`` and a bias key ``B(id)``.

        Returns:
            GTSAM CustomFactor over six keys.
        """
        vertex_i, vertex_j = self._vertices
        if vertex_i is None or vertex_j is None:
            raise ValueError("Edge endpoints are not set")

        keys = [X(vertex_i), V(vertex_i), B(vertex_i), X(vertex_j), V(vertex_j), B(vertex_j)]
        noise_model = gtsam.noiseModel.Gaussian.Information(self._information)

        return gtsam.CustomFactor(noise_model, keys, self._gtsam_error)

    def _gtsam_error(
        self,
        this: gtsam.CustomFactor,
        values: gtsam.Values,
        jacobians: Optional[List[npt.NDArray[np.float64]]],
    ) -> npt.NDArray[np.float64]:
        keys = this.keys()
        args = [
            values.atPose3(keys[0]),
            values.atVector(keys[1]),
            values.atConstantBias(keys[2]),
            values.atPose3(keys[3]),
            values.atVector(keys[4]),
            values.atConstantBias(keys[5]),
        ]

        def f(*a: Any) -> npt.NDArray[np.float64]:
            return self.evaluate(PRVAGState.from_gtsam(*a[:3]), PRVAGState.from_gtsam(*a[3:]))

        error = f(*args)

        if jacobians is not None:
            for k in range(len(args)):
                jacobians[k] = _numerical_derivative(f, args, k)

        return error

    def read_tokens(self, tokens: Iterator[str]) -> bool:
        """Read the edge record from a token iterator (see :meth:`read`)."""
        try:
            T = read_floats(tokens, 1, "T")
            g = read_floats(tokens, 3, "gravity")
            m = read_floats(tokens, self.DIMENSION, "measurement")
            upper = read_floats(
                tokens, self.DIMENSION * (self.DIMENSION + 1) // 2, "information"
            )
        except RecordParseError as e:
            raise IMUPreIntegrationParseError(str(e)) from e

        self.set_t(T[0])
        self.set_gravity(g)
        self.set_measurement(m)

        # Mirror the upper triangle into the lower one
        rows, cols = np.triu_indices(self.DIMENSION)
        information = np.zeros((self.DIMENSION, self.DIMENSION))
        information[rows, cols] = upper
        information[cols, rows] = upper
        self.set_information(information)

        return True

    def read(self, stream: TextIO) -> bool:
        """Read T, gravity, measurement and information from a text stream.

        Token order: ``T gx gy gz``, the 15 measurement values in P/R/V/A/G
        order, then the information matrix upper triangle row by row.

        Args:
            stream: Stream positioned at the first token of the record.

        Returns:
            True on success.

        Raises:
            IMUPreIntegrationParseError: If the record is truncated or holds
                a token that is not a number.
        """
        return self.read_tokens(iter_tokens(stream))

    def write(self, stream: TextIO) -> bool:
        """Write the record in the same token order :meth:`read` expects.

        Args:
            stream: Output text stream.

        Returns:
            False if the stream is closed, True otherwise.
        """
        if stream.closed:
            return False

        rows, cols = np.triu_indices(self.DIMENSION)
        values = np.concatenate(
            ([self._T], self._g, self._measurement, self._information[rows, cols])
        )
        stream.write(format_floats(values))
        return True

    def to_string(self) -> str:
        """Serialize the record to a single line of tokens."""
        buffer = io.StringIO()
        self.write(buffer)
        return buffer.getvalue()

    @staticmethod
    def from_string(
        text: str,
        vertex_i: Optional[int] = None,
        vertex_j: Optional[int] = None,
    ) -> "EdgePRVAGIMUPreIntegration":
        """Create an edge from a serialized record.

        Args:
            text: Record tokens as produced by :meth:`to_string`.
            vertex_i: Id of the earlier vertex.
            vertex_j: Id of the later vertex.

        Returns:
            EdgePRVAGIMUPreIntegration instance.
        """
        edge = EdgePRVAGIMUPreIntegration(vertex_i, vertex_j)
        edge.read(io.StringIO(text))
        return edge

    def __repr__(self) -> str:
        return f"EdgePRVAGIMUPreIntegration(vertices={self._vertices}, T={self._T})"


def _tangent_dimension(x: Any) -> int:
    if isinstance(x, (gtsam.Pose3, gtsam.imuBias.ConstantBias)):
        return 6
    return int(np.size(x))


def _retract(x: Any, delta: npt.NDArray[np.float64]) -> Any:
    if isinstance(x, gtsam.Pose3):
        return x.retract(delta)
    if isinstance(x, gtsam.imuBias.ConstantBias):
        # ConstantBias tangent is [accelerometer; gyroscope]
        return gtsam.imuBias.ConstantBias(
            x.accelerometer() + delta[:3], x.gyroscope() + delta[3:]
        )
    return x + delta


def _numerical_derivative(
    f: Callable[..., npt.NDArray[np.float64]],
    args: Sequence[Any],
    k: int,
    eps: float = _NUMERICAL_EPSILON,
) -> npt.NDArray[np.float64]:
    """Central-difference derivative of ``f`` w.r.t. its ``k``-th argument."""
    dim = _tangent_dimension(args[k])
    columns = []
    for c in range(dim):
        delta = np.zeros(dim)
        delta[c] = eps
        plus = list(args)
        minus = list(args)
        plus[k] = _retract(args[k], delta)
        minus[k] = _retract(args[k], -delta)
        columns.append((f(*plus) - f(*minus)) / (2.0 * eps))
    return np.column_stack(columns)


def predict_measurement(
    state_i: PRVAGState,
    state_j: PRVAGState,
    T: float,
    g: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Measurement for which the edge residual between two states vanishes.

    The bias blocks of the returned measurement are zero.

    Args:
        state_i: State at the earlier keyframe.
        state_j: State at the later keyframe.
        T: Time elapsed between the keyframes (s).
        g: Gravity vector.

    Returns:
        15-dimensional measurement in P/R/V/A/G layout.
    """
    g = np.asarray(g, dtype=np.float64)
    ori_i_inv = state_i.ori.inverse()

    m = np.zeros(STATE_DIMENSION)
    m[INDEX_P : INDEX_P + 3] = ori_i_inv.rotate(
        state_j.pos - state_i.pos - (state_i.vel - 0.5 * g * T) * T
    )
    m[INDEX_R : INDEX_R + 3] = gtsam.Rot3.Logmap(ori_i_inv.compose(state_j.ori))
    m[INDEX_V : INDEX_V + 3] = ori_i_inv.rotate(state_j.vel - state_i.vel + g * T)
    return m


def create_imu_pre_integration_edge(
    vertex_i: int,
    vertex_j: int,
    measurement: npt.NDArray[np.float64],
    T: float,
    gravity: npt.NDArray[np.float64],
    information: Optional[npt.NDArray[np.float64]] = None,
) -> EdgePRVAGIMUPreIntegration:
    """Create a fully configured IMU pre-integration edge.

    Args:
        vertex_i: Id of the earlier vertex.
        vertex_j: Id of the later vertex.
        measurement: 15-dimensional pre-integrated measurement.
        T: Time elapsed between the vertices (s).
        gravity: Gravity vector.
        information: 15x15 information matrix. Defaults to identity.

    Returns:
        EdgePRVAGIMUPreIntegration instance.
    """
    edge = EdgePRVAGIMUPreIntegration(vertex_i, vertex_j)
    edge.set_t(T)
    edge.set_gravity(gravity)
    edge.set_measurement(measurement)
    if information is not None:
        edge.set_information(information)
    return edge
