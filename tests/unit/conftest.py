"""Shared test fixtures."""

import json
from pathlib import Path

import pytest

from hypertree.config import TreeOptions
from hypertree.core.registry import TreeHandlers
from hypertree.core.state.engine import TreeState
from tests.unit.fakes import OUTLINE, outline


@pytest.fixture
def handlers() -> TreeHandlers:
    return TreeHandlers()


@pytest.fixture
def state(handlers: TreeHandlers) -> TreeState:
    """The sample outline, all closed, registered under "outline"."""
    return TreeState("outline", outline(), handlers=handlers)


@pytest.fixture
def opened_state(handlers: TreeHandlers) -> TreeState:
    """The sample outline with every node opened."""
    return TreeState("outline", outline(), TreeOptions(default_opened=True), handlers=handlers)


@pytest.fixture
def outline_file(tmp_path: Path) -> Path:
    path = tmp_path / "outline.json"
    path.write_text(json.dumps(OUTLINE))
    return path
