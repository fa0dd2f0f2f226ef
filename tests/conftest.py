"""Pytest configuration and fixtures."""

import gtsam
import numpy as np
import pytest

from prvag.pose_graph import PRVAGState


@pytest.fixture
def gravity():
    """Gravity reaction vector as seen by a level accelerometer."""
    return np.array([0.0, 0.0, 9.81])


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(42)


@pytest.fixture
def state_pair(rng):
    """Two arbitrary states with unrelated orientations and zero biases."""

    def random_state() -> PRVAGState:
        return PRVAGState(
            pos=rng.normal(scale=5.0, size=3),
            ori=gtsam.Rot3.Expmap(rng.normal(scale=0.5, size=3)),
            vel=rng.normal(size=3),
            b_a=np.zeros(3),
            b_g=np.zeros(3),
        )

    return random_state(), random_state()
