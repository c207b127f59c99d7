import numpy as np
import pytest


@pytest.fixture
def small_gamma():
    """Two documents over three topics."""
    return np.array([[2.0, 3.0, 5.0], [1.0, 1.0, 8.0]])


@pytest.fixture
def clustered_gamma():
    """Twenty documents with every entry within 0.05 of 10."""
    rng = np.random.default_rng(0)
    return 10.0 + rng.uniform(-0.05, 0.05, size=(20, 3))


@pytest.fixture
def random_gamma():
    rng = np.random.default_rng(42)
    return rng.gamma(shape=2.0, scale=3.0, size=(50, 5)) + 0.1
