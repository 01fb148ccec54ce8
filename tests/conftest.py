"""Shared test fixtures."""

from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Drop throttle-requests settings inherited from the developer's shell."""
    for name in list(os.environ):
        if name.startswith("THROTTLE_REQUESTS_"):
            monkeypatch.delenv(name)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
