"""Pose graph of PRVAG vertices and IMU pre-integration edges using GTSAM."""

from typing import Dict, List, Optional

import gtsam
import numpy as np
import numpy.typing as npt
from gtsam.symbol_shorthand import B, V, X

from ..utils.log import get_logger
from .edge import EdgePRVAGIMUPreIntegration
from .node import PRVAGState, PRVAGVertex

logger = get_logger(__name__)


class PoseGraph:
    """Main pose graph class for IMU pre-integration fusion using GTSAM.

    The graph owns its vertices in a table keyed by vertex id. Edges hold
    only the ids of their endpoints, so a vertex may be shared by any number
    of edges.
    """

    def __init__(self) -> None:
        """Initialize an empty pose graph."""
        self.vertices: Dict[int, PRVAGVertex] = {}
        self.edges: List[EdgePRVAGIMUPreIntegration] = []
        self._next_vertex_id = 0

    def add_vertex(
        self,
        state: PRVAGState,
        vertex_id: Optional[int] = None,
        fixed: bool = False,
    ) -> int:
        """Add a vertex to the graph.

        Args:
            state: Initial estimate of the vertex.
            vertex_id: Optional vertex identifier. If None, auto-increments.
            fixed: Whether the vertex is held constant during optimization.

        Returns:
            The assigned vertex ID.
        """
        if vertex_id is None:
            vertex_id = self._next_vertex_id
        if vertex_id in self.vertices:
            raise ValueError(f"Vertex {vertex_id} already exists")

        self.vertices[vertex_id] = PRVAGVertex(vertex_id, state, fixed=fixed)
        self._next_vertex_id = max(self._next_vertex_id, vertex_id + 1)

        return vertex_id

    def add_edge(self, edge: EdgePRVAGIMUPreIntegration) -> None:
        """Add an IMU pre-integration edge.

        Args:
            edge: Edge whose endpoint ids are already in the graph.
        """
        vertex_i, vertex_j = edge.vertices
        for vertex_id in (vertex_i, vertex_j):
            if vertex_id not in self.vertices:
                raise KeyError(f"Edge endpoint {vertex_id} is not a vertex of the graph")
        if vertex_i == vertex_j:
            raise ValueError("Edge endpoints must be distinct vertices")

        self.edges.append(edge)

    def get_vertex(self, vertex_id: int) -> Optional[PRVAGVertex]:
        """Get a vertex by ID.

        Args:
            vertex_id: The vertex identifier.

        Returns:
            The vertex if present, None otherwise.
        """
        return self.vertices.get(vertex_id)

    def fix_vertex(self, vertex_id: int, fixed: bool = True) -> None:
        """Mark a vertex as fixed (or free) for optimization."""
        if vertex_id not in self.vertices:
            raise KeyError(f"Unknown vertex {vertex_id}")
        self.vertices[vertex_id].fixed = fixed

    def compute_errors(self) -> List[npt.NDArray[np.float64]]:
        """Evaluate every edge at the current estimates.

        Returns:
            Residual of each edge, in edge order.
        """
        return [edge.compute_error(self.vertices) for edge in self.edges]

    def chi2(self) -> float:
        """Get the total weighted squared error of the graph.

        Returns:
            Sum of the edges' chi2 values at the current estimates.
        """
        self.compute_errors()
        return float(sum(edge.chi2() for edge in self.edges))

    def to_gtsam(
        self, prior_sigma: float = 1e-6
    ) -> tuple[gtsam.NonlinearFactorGraph, gtsam.Values]:
        """Build a GTSAM factor graph and initial values.

        Fixed vertices are pinned with tight priors on their pose, velocity
        and bias keys.

        Args:
            prior_sigma: Standard deviation of the priors on fixed vertices.

        Returns:
            Tuple of (factor graph, initial values).
        """
        graph = gtsam.NonlinearFactorGraph()
        values = gtsam.Values()

        for vertex_id, vertex in self.vertices.items():
            pose, velocity, bias = vertex.estimate.to_gtsam()
            values.insert(X(vertex_id), pose)
            values.insert(V(vertex_id), velocity)
            values.insert(B(vertex_id), bias)

            if vertex.fixed:
                graph.add(
                    gtsam.PriorFactorPose3(
                        X(vertex_id), pose, gtsam.noiseModel.Isotropic.Sigma(6, prior_sigma)
                    )
                )
                graph.add(
                    gtsam.PriorFactorVector(
                        V(vertex_id), velocity, gtsam.noiseModel.Isotropic.Sigma(3, prior_sigma)
                    )
                )
                graph.add(
                    gtsam.PriorFactorConstantBias(
                        B(vertex_id), bias, gtsam.noiseModel.Isotropic.Sigma(6, prior_sigma)
                    )
                )

        for edge in self.edges:
            graph.add(edge.to_gtsam_factor())

        logger.debug(
            "Built GTSAM graph with %d factors over %d vertices", graph.size(), len(self.vertices)
        )
        return graph, values

    def update_from_values(self, values: gtsam.Values) -> None:
        """Copy estimates from GTSAM values back into the vertices.

        Args:
            values: Values holding pose, velocity and bias keys.
        """
        for vertex_id, vertex in self.vertices.items():
            if not values.exists(X(vertex_id)):
                continue
            vertex.set_estimate(
                PRVAGState.from_gtsam(
                    values.atPose3(X(vertex_id)),
                    values.atVector(V(vertex_id)),
                    values.atConstantBias(B(vertex_id)),
                )
            )

    def optimize(
        self,
        optimizer_type: str = "LevenbergMarquardt",
        max_iterations: int = 100,
        relative_error_tol: float = 1e-5,
        absolute_error_tol: float = 1e-5,
    ) -> gtsam.Values:
        """Optimize the pose graph.

        Args:
            optimizer_type: Type of optimizer ("LevenbergMarquardt" or "GaussNewton").
            max_iterations: Maximum number of optimization iterations.
            relative_error_tol: Relative error tolerance for convergence.
            absolute_error_tol: Absolute error tolerance for convergence.

        Returns:
            Optimized values.
        """
        if not any(vertex.fixed for vertex in self.vertices.values()):
            logger.warning("No vertex is fixed; the problem has a free gauge")

        graph, initial_estimates = self.to_gtsam()

        if optimizer_type == "LevenbergMarquardt":
            params = gtsam.LevenbergMarquardtParams()
            params.setMaxIterations(max_iterations)
            params.setRelativeErrorTol(relative_error_tol)
            params.setAbsoluteErrorTol(absolute_error_tol)
            optimizer = gtsam.LevenbergMarquardtOptimizer(graph, initial_estimates, params)
        elif optimizer_type == "GaussNewton":
            params = gtsam.GaussNewtonParams()
            params.setMaxIterations(max_iterations)
            params.setRelativeErrorTol(relative_error_tol)
            params.setAbsoluteErrorTol(absolute_error_tol)
            optimizer = gtsam.GaussNewtonOptimizer(graph, initial_estimates, params)
        else:
            raise ValueError(f"Unknown optimizer type: {optimizer_type}")

        result = optimizer.optimize()
        self.update_from_values(result)

        logger.info(
            "%s finished after %d iterations, error %.6g -> %.6g",
            optimizer_type,
            optimizer.iterations(),
            graph.error(initial_estimates),
            graph.error(result),
        )
        return result

    def size(self) -> int:
        """Get the number of edges in the graph.

        Returns:
            Number of edges.
        """
        return len(self.edges)
