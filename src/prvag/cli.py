"""Command line entry point: report and optionally optimize a pose graph file."""

import sys
from pathlib import Path
from typing import Sequence

from .pose_graph import GraphOptimizer
from .pose_graph.tokens import RecordParseError
from .utils.config import parse_args
from .utils.io import load_pose_graph, save_pose_graph
from .utils.log import configure_logging


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line tool.

    Args:
        argv: Arguments without the program name. Defaults to ``sys.argv[1:]``.

    Returns:
        Process exit status.
    """
    args = parse_args(argv)
    logger = configure_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        graph = load_pose_graph(Path(args.input))
    except (OSError, RecordParseError, ValueError, KeyError) as e:
        logger.error("Failed to load %s: %s", args.input, e)
        return 1

    logger.info(
        "Loaded %d vertices, %d edges, chi2 = %.6g",
        len(graph.vertices),
        graph.size(),
        graph.chi2(),
    )

    try:
        for vertex_id in args.fix:
            graph.fix_vertex(vertex_id)
    except KeyError as e:
        logger.error("Cannot fix vertex: %s", e)
        return 1

    if args.optimize:
        optimizer = GraphOptimizer(
            method=args.method,
            max_iterations=args.max_iterations,
            relative_error_tol=args.relative_error_tol,
            absolute_error_tol=args.absolute_error_tol,
        )
        try:
            optimizer.optimize(graph)
        except RuntimeError as e:
            logger.error("Optimization failed: %s", e)
            return 1
        logger.info("Optimized chi2 = %.6g", graph.chi2())

    for index, edge in enumerate(graph.edges):
        vertex_i, vertex_j = edge.vertices
        logger.debug("Edge %d (%d -> %d): chi2 = %.6g", index, vertex_i, vertex_j, edge.chi2())

    if args.output is not None:
        save_pose_graph(graph, Path(args.output))
        logger.info("Wrote %s", args.output)

    return 0


if __name__ == "__main__":
    sys.exit(main())
