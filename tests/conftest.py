"""
pytest configuration and fixtures for the GPP codec tests.

Provides reusable fixtures for:
- Known-good GPP strings and decoded sections
- YAML test vectors
- Hypothesis property-based testing configuration
"""

import os
import sys
from pathlib import Path

import pytest
import yaml

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

VECTORS_DIR = Path(__file__).parent / "vectors"

# Configure Hypothesis profiles
from hypothesis import settings, Verbosity, Phase

# Default profile: balanced speed and coverage
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
)

# CI profile: more thorough testing
settings.register_profile(
    "ci",
    max_examples=500,
    deadline=None,
    suppress_health_check=[],
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

# Load profile from environment
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


TCF_EU_V2_SEGMENT = "CPXxRfAPXxRfAAfKABENB-CgAAAAAAAAAAYgAAAAAAAA"
GPP_BENCH_STRING = "DBACNY~" + TCF_EU_V2_SEGMENT + "~1YNN"
US_NAT_V1_SEGMENT = "BVVqAAEABCA"


@pytest.fixture
def tcf_eu_v2_segment():
    """TCF EU v2 core segment: CMP 31, consent language EN, publisher country DE."""
    return TCF_EU_V2_SEGMENT


@pytest.fixture
def gpp_bench_string():
    """GPP string with TCF EU v2 (id 2) and US Privacy (id 6) sections."""
    return GPP_BENCH_STRING


@pytest.fixture
def us_nat_v1_segment():
    return US_NAT_V1_SEGMENT


@pytest.fixture(scope="session")
def gpp_vectors():
    """Test vectors from tests/vectors/gpp_vectors.yaml."""
    with open(VECTORS_DIR / "gpp_vectors.yaml") as f:
        return yaml.safe_load(f)


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "compliance: marks tests that check published IAB strings"
    )
