"""Shared pytest fixtures."""

import os

import pytest

from pgdoctor.config import reset_config


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate every test from PGDOCTOR_* variables and the cached config."""
    for key in list(os.environ):
        if key.startswith("PGDOCTOR_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()
