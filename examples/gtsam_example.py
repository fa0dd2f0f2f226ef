"""Example of using PRVAG with GTSAM for IMU pre-integration graph optimization.

This example demonstrates:
1. Simulating a short trajectory of navigation states
2. Creating IMU pre-integration edges between consecutive states
3. Perturbing the initial estimates
4. Optimizing the graph
5. Saving and reloading the graph file
"""

import tempfile
from pathlib import Path

import gtsam
import numpy as np

from prvag.pose_graph import (
    GraphOptimizer,
    PoseGraph,
    PRVAGState,
    create_imu_pre_integration_edge,
    predict_measurement,
)
from prvag.utils.io import load_pose_graph, save_pose_graph


def simulate_states(num_states: int, dt: float) -> list[PRVAGState]:
    """Simulate a vehicle driving a gentle left-hand arc."""
    states = []
    yaw_rate = 0.2
    speed = 2.0
    for k in range(num_states):
        yaw = yaw_rate * k * dt
        ori = gtsam.Rot3.Yaw(yaw)
        vel = ori.rotate(np.array([speed, 0.0, 0.0]))
        pos = np.array(
            [speed / yaw_rate * np.sin(yaw), speed / yaw_rate * (1.0 - np.cos(yaw)), 0.0]
        )
        states.append(PRVAGState(pos=pos, ori=ori, vel=vel, b_a=np.zeros(3), b_g=np.zeros(3)))
    return states


def main() -> None:
    """Run PRVAG GTSAM optimization example."""
    print("PRVAG GTSAM Example")
    print("=" * 50)

    dt = 0.5
    gravity = np.array([0.0, 0.0, 9.81])
    rng = np.random.default_rng(0)

    truth = simulate_states(num_states=6, dt=dt)
    print(f"\n1. Simulated {len(truth)} states")

    # Add vertices with perturbed estimates, keep the first one fixed
    graph = PoseGraph()
    for k, state in enumerate(truth):
        estimate = state if k == 0 else state.oplus(rng.normal(scale=0.05, size=15))
        graph.add_vertex(estimate, fixed=(k == 0))
    print("2. Added vertices (vertex 0 fixed)")

    # Edges from noise-free pre-integrated measurements
    information = np.diag(np.full(15, 1.0e4))
    for k in range(len(truth) - 1):
        measurement = predict_measurement(truth[k], truth[k + 1], dt, gravity)
        graph.add_edge(
            create_imu_pre_integration_edge(k, k + 1, measurement, dt, gravity, information)
        )
    print(f"3. Added {graph.size()} IMU pre-integration edges")

    print(f"\n4. Initial chi2: {graph.chi2():.6f}")
    GraphOptimizer(relative_error_tol=1e-10, absolute_error_tol=1e-10).optimize(graph)
    print(f"   Optimized chi2: {graph.chi2():.6e}")

    for vertex_id, state in enumerate(truth):
        estimate = graph.vertices[vertex_id].estimate
        print(f"   Vertex {vertex_id}: position error {np.linalg.norm(estimate.pos - state.pos):.2e} m")

    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "graph.g2o"
        save_pose_graph(graph, path)
        reloaded = load_pose_graph(path)
        print(f"\n5. Reloaded {len(reloaded.vertices)} vertices, chi2 {reloaded.chi2():.6e}")


if __name__ == "__main__":
    main()
