"""Shared fixtures."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from fhir_tables import config as config_module

import fhir_factory as fx


@pytest.fixture(autouse=True)
def _fresh_global_config(monkeypatch):
    """Keep the cached global config and FHIR_TABLES_* env out of tests."""
    monkeypatch.setattr(config_module, "_config", None)
    for name in list(os.environ):
        if name.startswith("FHIR_TABLES_"):
            monkeypatch.delenv(name)


@pytest.fixture
def write_bundle(tmp_path: Path):
    """Write a bundle dict to ``tmp_path/in/<name>`` and return its path."""
    in_dir = tmp_path / "in"
    in_dir.mkdir()

    def _write(name: str, *resources: dict) -> Path:
        path = in_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(fx.bundle(*resources)), encoding="utf-8")
        return path

    _write.dir = in_dir
    return _write
