"""
Pytest configuration and fixtures.

Add any shared fixtures or pytest configuration here.
"""

import logging
import sys

import pytest

from pyframeproxy import CommandProxy, OperationTable
from tests.fixtures.fake_resource import TEST_POLICY, RecordingChannel, RecordingResource


def pytest_configure(config):
    """Configure pytest with custom settings."""
    log_level = logging.DEBUG if config.getoption("--debug-pyframeproxy") else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("pyframeproxy").setLevel(log_level)
    logging.getLogger("asyncio").setLevel(log_level)

    custom_log_file = config.getoption("--pyframeproxy-log-file")
    if custom_log_file:
        file_handler = logging.FileHandler(custom_log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
            )
        )
        logging.getLogger().addHandler(file_handler)


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--debug-pyframeproxy",
        action="store_true",
        default=False,
        help="Enable debug logging for pyframeproxy (shows detailed execution flow)",
    )
    parser.addoption(
        "--pyframeproxy-log-file",
        action="store",
        default=None,
        help="Log pyframeproxy debug output to specified file",
    )


@pytest.fixture
def resource():
    return RecordingResource()


@pytest.fixture
def operations(resource):
    return OperationTable.from_resource(resource)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def proxy(channel, operations):
    return CommandProxy("r1", channel, operations, policy=TEST_POLICY)
