"""Pose graph optimization using GTSAM."""

from typing import List

import gtsam

from ..utils.log import get_logger
from .graph import PoseGraph

logger = get_logger(__name__)


class GraphOptimizer:
    """Optimizes pose graphs using GTSAM backend solvers.

    Supports Levenberg-Marquardt, Gauss-Newton and incremental iSAM2.
    """

    def __init__(
        self,
        method: str = "LevenbergMarquardt",
        max_iterations: int = 100,
        relative_error_tol: float = 1e-5,
        absolute_error_tol: float = 1e-5,
    ) -> None:
        """Initialize optimizer.

        Args:
            method: Optimization method ("LevenbergMarquardt", "GaussNewton" or "ISAM2").
            max_iterations: Maximum number of iterations.
            relative_error_tol: Relative error tolerance for convergence.
            absolute_error_tol: Absolute error tolerance for convergence.
        """
        self.method = method
        self.max_iterations = max_iterations
        self.relative_error_tol = relative_error_tol
        self.absolute_error_tol = absolute_error_tol

    def optimize(
        self,
        graph: PoseGraph,
        fixed_vertices: List[int] | None = None,
    ) -> gtsam.Values:
        """Optimize the pose graph.

        Args:
            graph: The pose graph to optimize.
            fixed_vertices: Vertex IDs to keep fixed, in addition to the
                ones already marked fixed in the graph.

        Returns:
            The optimized values.
        """
        for vertex_id in fixed_vertices or []:
            graph.fix_vertex(vertex_id)

        logger.debug(
            "Optimizing %d edges with %s (max %d iterations)",
            graph.size(),
            self.method,
            self.max_iterations,
        )

        if self.method == "ISAM2":
            return self.optimize_incremental(graph)

        return graph.optimize(
            optimizer_type=self.method,
            max_iterations=self.max_iterations,
            relative_error_tol=self.relative_error_tol,
            absolute_error_tol=self.absolute_error_tol,
        )

    def optimize_incremental(
        self,
        graph: PoseGraph,
    ) -> gtsam.Values:
        """Perform incremental optimization using iSAM2.

        Args:
            graph: The pose graph to optimize.

        Returns:
            The optimized values.
        """
        # Configure iSAM2
        parameters = gtsam.ISAM2Params()
        parameters.setRelinearizeThreshold(0.01)
        parameters.relinearizeSkip = 1

        isam = gtsam.ISAM2(parameters)

        # Add all factors and initial estimates
        factors, initial_estimates = graph.to_gtsam()
        isam.update(factors, initial_estimates)

        # Extra relinearization passes
        for _ in range(self.max_iterations - 1):
            isam.update()

        result = isam.calculateEstimate()
        graph.update_from_values(result)

        return result
