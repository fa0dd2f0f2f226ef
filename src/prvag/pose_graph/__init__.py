"""Pose graph core module using GTSAM.

This module provides PRVAG vertices, the IMU pre-integration edge that
binds consecutive vertices, and the graph and optimizer that combine them.
"""

from .edge import (
    EdgePRVAGIMUPreIntegration,
    EdgeType,
    IMUPreIntegrationParseError,
    create_imu_pre_integration_edge,
    predict_measurement,
)
from .graph import PoseGraph
from .node import (
    INDEX_A,
    INDEX_G,
    INDEX_P,
    INDEX_R,
    INDEX_V,
    PRVAGState,
    PRVAGVertex,
)
from .optimizer import GraphOptimizer
from .tokens import RecordParseError

__all__ = [
    "INDEX_A",
    "INDEX_G",
    "INDEX_P",
    "INDEX_R",
    "INDEX_V",
    "EdgePRVAGIMUPreIntegration",
    "EdgeType",
    "GraphOptimizer",
    "IMUPreIntegrationParseError",
    "PRVAGState",
    "PRVAGVertex",
    "PoseGraph",
    "RecordParseError",
    "create_imu_pre_integration_edge",
    "predict_measurement",
]
