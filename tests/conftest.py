# Copyright 2019-2025 ETH Zurich and the DaCe authors. All rights reserved.
"""
pytest configuration file.
"""
import pytest

from gradgraph.config import temporary_config


def pytest_configure(config):
    config.addinivalue_line("markers", "autodiff: tests of the gradient generation pass")


@pytest.fixture
def clean_config():
    """ Resets every configuration entry changed by the test. """
    with temporary_config():
        yield
