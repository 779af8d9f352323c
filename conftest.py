"""
Pytest configuration.

Adds --seed so randomized simulation tests can be replayed.
"""

import pytest


def pytest_addoption(parser):
    """Add custom command line options"""
    parser.addoption(
        "--seed",
        action="store",
        type=int,
        default=42,
        help="Seed for randomized pools, bus jitter and strategies (default: 42)"
    )


def pytest_report_header(config):
    return f"placement simulation seed: {config.getoption('--seed')}"


@pytest.fixture(scope="session")
def seed(request):
    """Fixture that provides the simulation seed"""
    return request.config.getoption("--seed")
