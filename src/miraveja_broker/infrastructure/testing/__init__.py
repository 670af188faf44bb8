"""
Testing utilities module.

Provides helpers and utilities for testing applications built on miraveja-broker.
"""

from .utilities import TestBroker, create_mock_broker

__all__ = [
    "TestBroker",
    "create_mock_broker",
]
