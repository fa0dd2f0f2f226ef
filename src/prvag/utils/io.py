"""Input/Output utilities for pose graph files.

Graph files hold one record per line::

    VERTEX_PRVAG <id> px py pz rx ry rz vx vy vz bax bay baz bgx bgy bgz
    FIX <id>
    EDGE_PRVAG_IMU_PRE_INTEGRATION <i> <j> <139 edge tokens>

Blank lines and lines starting with ``#`` are ignored.
"""

from pathlib import Path

from ..pose_graph import EdgePRVAGIMUPreIntegration, EdgeType, PoseGraph, PRVAGVertex
from ..pose_graph.tokens import RecordParseError
from .log import get_logger

logger = get_logger(__name__)

VERTEX_TAG = "VERTEX_PRVAG"
FIX_TAG = "FIX"
EDGE_TAG = EdgeType.IMU_PRE_INTEGRATION.value


def _parse_id(token: str, lineno: int) -> int:
    try:
        return int(token)
    except ValueError:
        raise ValueError(f"Line {lineno}: invalid vertex id {token!r}") from None


def load_pose_graph(filepath: Path) -> PoseGraph:
    """Load pose graph from file.

    Args:
        filepath: Path to saved pose graph.

    Returns:
        Loaded pose graph.
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Pose graph file not found: {filepath}")

    graph = PoseGraph()
    fixed = []

    with filepath.open("r") as f:
        for lineno, line in enumerate(f, start=1):
            fields = line.split()
            if not fields or fields[0].startswith("#"):
                continue

            tag = fields[0]
            tokens = iter(fields[1:])
            try:
                if tag == VERTEX_TAG:
                    vertex = PRVAGVertex(_parse_id(next(tokens, ""), lineno))
                    vertex.read_tokens(tokens)
                    graph.add_vertex(vertex.estimate, vertex_id=vertex.id)
                elif tag == FIX_TAG:
                    fixed.append(_parse_id(next(tokens, ""), lineno))
                elif tag == EDGE_TAG:
                    vertex_i = _parse_id(next(tokens, ""), lineno)
                    vertex_j = _parse_id(next(tokens, ""), lineno)
                    edge = EdgePRVAGIMUPreIntegration(vertex_i, vertex_j)
                    edge.read_tokens(tokens)
                    graph.add_edge(edge)
                else:
                    raise ValueError(f"Line {lineno}: unknown record tag {tag!r}")
            except RecordParseError as e:
                raise type(e)(f"Line {lineno}: {e}") from e

            if next(tokens, None) is not None:
                raise ValueError(f"Line {lineno}: trailing tokens after {tag} record")

    # FIX records may precede the vertices they refer to
    for vertex_id in fixed:
        graph.fix_vertex(vertex_id)

    logger.debug(
        "Loaded %d vertices and %d edges from %s", len(graph.vertices), graph.size(), filepath
    )
    return graph


def save_pose_graph(graph: PoseGraph, filepath: Path) -> None:
    """Save pose graph to file.

    Args:
        graph: The pose graph to save.
        filepath: Output file path.
    """
    filepath = Path(filepath)

    with filepath.open("w") as f:
        for vertex_id in sorted(graph.vertices):
            f.write(f"{VERTEX_TAG} {vertex_id} ")
            graph.vertices[vertex_id].write(f)
            f.write("\n")

        for vertex_id in sorted(graph.vertices):
            if graph.vertices[vertex_id].fixed:
                f.write(f"{FIX_TAG} {vertex_id}\n")

        for edge in graph.edges:
            vertex_i, vertex_j = edge.vertices
            f.write(f"{EDGE_TAG} {vertex_i} {vertex_j} ")
            edge.write(f)
            f.write("\n")

    logger.debug("Saved %d vertices and %d edges to %s", len(graph.vertices), graph.size(), filepath)
