"""Tests for PRVAG states, vertices and the pose graph."""

import io

import gtsam
import numpy as np
import pytest

from prvag.pose_graph import (
    GraphOptimizer,
    PoseGraph,
    PRVAGState,
    PRVAGVertex,
    RecordParseError,
    create_imu_pre_integration_edge,
    predict_measurement,
)


def make_chain(num_states: int = 3, dt: float = 0.5) -> list[PRVAGState]:
    """States along a gently turning, climbing trajectory."""
    states = []
    for k in range(num_states):
        t = k * dt
        states.append(
            PRVAGState(
                pos=np.array([2.0 * t, 0.1 * t**2, 0.05 * t]),
                ori=gtsam.Rot3.Ypr(0.2 * t, 0.01 * t, 0.0),
                vel=np.array([2.0, 0.2 * t, 0.05]),
                b_a=np.array([0.01, -0.02, 0.005]),
                b_g=np.array([0.001, 0.0, -0.002]),
            )
        )
    return states


def build_graph(states: list[PRVAGState], gravity: np.ndarray, dt: float = 0.5) -> PoseGraph:
    graph = PoseGraph()
    for k, state in enumerate(states):
        graph.add_vertex(state, fixed=(k == 0))
    for k in range(len(states) - 1):
        measurement = predict_measurement(states[k], states[k + 1], dt, gravity)
        graph.add_edge(
            create_imu_pre_integration_edge(k, k + 1, measurement, dt, gravity, 100.0 * np.eye(15))
        )
    return graph


class TestPRVAGState:
    """Test PRVAGState class."""

    def test_identity(self) -> None:
        """Test the identity state is at rest at the origin."""
        state = PRVAGState.identity()

        assert np.allclose(state.pos, np.zeros(3))
        assert np.allclose(state.ori.matrix(), np.eye(3))
        assert np.allclose(state.vel, np.zeros(3))

    def test_invalid_position_shape(self) -> None:
        """Test that invalid position shape raises error."""
        with pytest.raises(ValueError, match="State component 'pos' must be a 3D vector"):
            PRVAGState(
                pos=np.zeros(2), ori=gtsam.Rot3(), vel=np.zeros(3), b_a=np.zeros(3), b_g=np.zeros(3)
            )

    def test_orientation_must_be_rot3(self) -> None:
        """Test orientation cannot be given as a plain vector."""
        with pytest.raises(TypeError, match="Orientation must be a gtsam.Rot3"):
            PRVAGState(
                pos=np.zeros(3), ori=np.zeros(3), vel=np.zeros(3), b_a=np.zeros(3), b_g=np.zeros(3)
            )

    def test_oplus(self) -> None:
        """Test the update rule: additive blocks and right-composed rotation."""
        state = PRVAGState(
            pos=np.ones(3), ori=gtsam.Rot3.Yaw(0.5), vel=np.ones(3),
            b_a=np.zeros(3), b_g=np.zeros(3),
        )
        delta = np.arange(15, dtype=np.float64) * 0.01

        updated = state.oplus(delta)

        assert np.allclose(updated.pos, 1.0 + delta[0:3])
        assert np.allclose(
            updated.ori.matrix(), state.ori.compose(gtsam.Rot3.Expmap(delta[3:6])).matrix()
        )
        assert np.allclose(updated.vel, 1.0 + delta[6:9])
        assert np.allclose(updated.b_a, delta[9:12])
        assert np.allclose(updated.b_g, delta[12:15])
        # Original is unchanged
        assert np.allclose(state.pos, np.ones(3))

    def test_vector_roundtrip(self) -> None:
        """Test state -> vector -> state roundtrip."""
        state = make_chain(num_states=2)[1]
        recovered = PRVAGState.from_vector(state.to_vector())

        assert np.allclose(recovered.pos, state.pos)
        assert recovered.ori.equals(state.ori, 1e-12)
        assert np.allclose(recovered.b_g, state.b_g)

    def test_gtsam_roundtrip(self) -> None:
        """Test state -> GTSAM values -> state roundtrip."""
        state = make_chain(num_states=2)[1]
        pose, velocity, bias = state.to_gtsam()
        recovered = PRVAGState.from_gtsam(pose, velocity, bias)

        assert isinstance(pose, gtsam.Pose3)
        assert np.allclose(recovered.pos, state.pos)
        assert recovered.ori.equals(state.ori, 1e-12)
        assert np.allclose(recovered.vel, state.vel)
        assert np.allclose(recovered.b_a, state.b_a)
        assert np.allclose(recovered.b_g, state.b_g)


class TestPRVAGVertex:
    """Test PRVAGVertex class."""

    def test_default_estimate(self) -> None:
        """Test a vertex without estimate starts at the identity state."""
        vertex = PRVAGVertex(3)

        assert vertex.id == 3
        assert not vertex.fixed
        assert np.allclose(vertex.estimate.pos, np.zeros(3))

    def test_oplus_replaces_estimate(self) -> None:
        """Test vertex updates go through the state update rule."""
        vertex = PRVAGVertex(0)
        before = vertex.estimate
        vertex.oplus(np.full(15, 0.1))

        assert vertex.estimate is not before
        assert np.allclose(vertex.estimate.vel, np.full(3, 0.1))

    def test_read_write(self) -> None:
        """Test the 15-token vertex record."""
        state = make_chain(num_states=2)[1]
        stream = io.StringIO()
        assert PRVAGVertex(0, state).write(stream)
        assert len(stream.getvalue().split()) == 15

        vertex = PRVAGVertex(1)
        assert vertex.read(io.StringIO(stream.getvalue()))
        assert np.allclose(vertex.estimate.pos, state.pos)
        assert vertex.estimate.ori.equals(state.ori, 1e-12)

    def test_read_truncated(self) -> None:
        """Test a short vertex record raises a parse error."""
        with pytest.raises(RecordParseError, match="Expected 15 values for vertex, got 4"):
            PRVAGVertex(0).read(io.StringIO("1 2 3 4"))


class TestPoseGraph:
    """Test PoseGraph class."""

    def test_add_vertex(self) -> None:
        """Test adding vertices to graph."""
        graph = PoseGraph()
        state = PRVAGState.identity()

        vertex_id = graph.add_vertex(state)

        assert vertex_id == 0
        assert len(graph.vertices) == 1
        assert graph.get_vertex(vertex_id).estimate is state

    def test_vertex_ids_continue_after_explicit_id(self) -> None:
        """Test auto-assigned ids never collide with explicit ones."""
        graph = PoseGraph()
        graph.add_vertex(PRVAGState.identity(), vertex_id=5)

        assert graph.add_vertex(PRVAGState.identity()) == 6

    def test_duplicate_vertex(self) -> None:
        """Test adding a vertex id twice raises error."""
        graph = PoseGraph()
        graph.add_vertex(PRVAGState.identity(), vertex_id=1)

        with pytest.raises(ValueError, match="Vertex 1 already exists"):
            graph.add_vertex(PRVAGState.identity(), vertex_id=1)

    def test_add_edge_with_unknown_vertex(self, gravity) -> None:
        """Test edges must refer to existing vertices."""
        graph = PoseGraph()
        graph.add_vertex(PRVAGState.identity())

        with pytest.raises(KeyError):
            graph.add_edge(create_imu_pre_integration_edge(0, 1, np.zeros(15), 0.1, gravity))

    def test_add_self_loop(self, gravity) -> None:
        """Test edges must connect two different vertices."""
        graph = PoseGraph()
        graph.add_vertex(PRVAGState.identity())

        with pytest.raises(ValueError, match="distinct"):
            graph.add_edge(create_imu_pre_integration_edge(0, 0, np.zeros(15), 0.1, gravity))

    def test_get_nonexistent_vertex(self) -> None:
        """Test getting a vertex that doesn't exist."""
        graph = PoseGraph()
        assert graph.get_vertex(999) is None

    def test_fix_unknown_vertex(self) -> None:
        """Test fixing a missing vertex raises error."""
        with pytest.raises(KeyError):
            PoseGraph().fix_vertex(3)

    def test_chi2_zero_for_consistent_graph(self, gravity) -> None:
        """Test consistent measurements give zero total chi2."""
        graph = build_graph(make_chain(), gravity)

        assert graph.size() == 2
        assert graph.chi2() < 1e-12

    def test_vertices_shared_between_edges(self, gravity) -> None:
        """Test moving a shared vertex changes both adjacent residuals."""
        graph = build_graph(make_chain(), gravity)
        graph.vertices[1].oplus(np.full(15, 0.01))

        errors = graph.compute_errors()

        assert np.linalg.norm(errors[0]) > 1e-3
        assert np.linalg.norm(errors[1]) > 1e-3

    def test_to_gtsam(self, gravity) -> None:
        """Test GTSAM export: three keys per vertex, three priors per fixed vertex."""
        graph = build_graph(make_chain(), gravity)

        factors, values = graph.to_gtsam()

        assert values.size() == 9
        assert factors.size() == 3 + 2
        assert factors.error(values) < 1e-9

    @pytest.mark.parametrize("method", ["LevenbergMarquardt", "GaussNewton"])
    def test_optimize_recovers_truth(self, gravity, rng, method) -> None:
        """Test optimization from perturbed estimates converges to the true states."""
        truth = make_chain()
        graph = build_graph(truth, gravity)
        for vertex_id in (1, 2):
            graph.vertices[vertex_id].oplus(rng.normal(scale=0.02, size=15))
        assert graph.chi2() > 1e-3

        graph.optimize(
            optimizer_type=method,
            max_iterations=50,
            relative_error_tol=1e-12,
            absolute_error_tol=1e-12,
        )

        assert graph.chi2() < 1e-8
        for vertex_id, state in enumerate(truth):
            estimate = graph.vertices[vertex_id].estimate
            assert np.allclose(estimate.pos, state.pos, atol=1e-5)
            assert np.allclose(estimate.vel, state.vel, atol=1e-5)
            assert estimate.ori.equals(state.ori, 1e-5)
            assert np.allclose(estimate.b_a, state.b_a, atol=1e-5)

    def test_optimize_unknown_method(self, gravity) -> None:
        """Test unknown optimizer type raises error."""
        graph = build_graph(make_chain(), gravity)

        with pytest.raises(ValueError, match="Unknown optimizer type"):
            graph.optimize(optimizer_type="Dogleg")


class TestGraphOptimizer:
    """Test GraphOptimizer front end."""

    def test_fixed_vertices_are_marked(self, gravity) -> None:
        """Test vertices passed as fixed are pinned before optimizing."""
        graph = build_graph(make_chain(), gravity)
        graph.fix_vertex(0, fixed=False)

        GraphOptimizer(max_iterations=5).optimize(graph, fixed_vertices=[0])

        assert graph.vertices[0].fixed

    def test_incremental(self, gravity, rng) -> None:
        """Test iSAM2 converges on a small chain."""
        truth = make_chain()
        graph = build_graph(truth, gravity)
        graph.vertices[2].oplus(rng.normal(scale=0.001, size=15))

        GraphOptimizer(method="ISAM2", max_iterations=10).optimize(graph)

        assert np.allclose(graph.vertices[2].estimate.pos, truth[2].pos, atol=1e-4)
        assert graph.chi2() < 1e-4
