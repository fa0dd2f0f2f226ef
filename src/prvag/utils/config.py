import argparse
from typing import Sequence


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Evaluate and optimize a PRVAG IMU pre-integration pose graph"
    )

    # Input / output
    parser.add_argument("input", type=str, help="Path to the pose graph file")
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write the (optimized) graph to this path",
    )

    # Optimization configuration
    parser.add_argument(
        "--optimize", action="store_true", help="Optimize the graph before reporting"
    )
    parser.add_argument(
        "--method",
        type=str,
        default="LevenbergMarquardt",
        choices=["LevenbergMarquardt", "GaussNewton", "ISAM2"],
        help="Optimization method",
    )
    parser.add_argument(
        "--max-iterations", type=int, default=100, help="Maximum number of iterations"
    )
    parser.add_argument(
        "--relative-error-tol",
        type=float,
        default=1e-5,
        help="Relative error tolerance for convergence",
    )
    parser.add_argument(
        "--absolute-error-tol",
        type=float,
        default=1e-5,
        help="Absolute error tolerance for convergence",
    )
    parser.add_argument(
        "--fix",
        type=int,
        action="append",
        default=[],
        help="Vertex ID to hold fixed (can be given several times)",
    )

    # Logging
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--log-file", type=str, default=None, help="Also write debug logs to this file"
    )

    return parser.parse_args(argv)
