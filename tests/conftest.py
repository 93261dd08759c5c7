"""Shared pytest fixtures for the glbt test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from glbt.config import AppSettings
from glbt.gitlab_client import GitLabClient
from tests.factories import GITLAB_URL, TOKEN

if TYPE_CHECKING:
    from pathlib import Path

pytest_plugins = ("respx",)

@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    """Provide application settings with deterministic defaults for tests."""
    return AppSettings.model_validate(
        {
            "gitlab_url": GITLAB_URL,
            "gitlab_token": TOKEN,
            "state_file": tmp_path / "state.json",
        },
    )

@pytest.fixture
def client() -> GitLabClient:
    """Provide a client pointed at the example GitLab instance."""
    return GitLabClient(GITLAB_URL, TOKEN)
