"""Configuration for pytest."""

import os
import logging
from typing import Generator

import pytest

from pyjaspr.tests.helpers import RepoContext, create_repo_context

logger = logging.getLogger(__name__)

@pytest.fixture(autouse=True)
def isolated_git_environment(tmp_path_factory: pytest.TempPathFactory,
                             monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's global git and jaspr config out of tests."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("JASPR_CONFIG", str(home / ".jaspr.yml"))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)

@pytest.fixture
def repo_ctx(tmp_path: "os.PathLike[str]") -> Generator[RepoContext, None, None]:
    """Working clone plus bare remote plus fake forge."""
    ctx = create_repo_context(str(tmp_path))
    logger.debug(f"Test repo at {ctx.repo_dir}")
    yield ctx
