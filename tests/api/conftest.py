"""
API Test Layer Configuration

Layer 1: API Contract Tests
- The FastAPI app runs in-process through TestClient
- Service layer is replaced per test; routing, auth and status codes are real

Usage:
    pytest tests/api -v
    pytest tests/api -v -k "distribute"
"""

import os
import sys

import pytest

# Add project root
sys.path.insert(
    0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
)


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line("markers", "api: marks tests as API contract tests")
