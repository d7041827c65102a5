"""Shared test fixtures."""

import pytest


@pytest.fixture
def gitlab_client_uninit():
    """Create an uninitialized GitLabClient with a fake token.

    Use this for sync tests that don't need the async context manager.
    """
    from mrscope.gitlab_client import GitLabClient

    return GitLabClient(token="fake-token", base_url="https://gitlab.com/api/v4")


@pytest.fixture
def isolated_cache_home(tmp_path, monkeypatch):
    """Point XDG_CACHE_HOME at a temp dir so nothing touches ~/.cache."""
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    return tmp_path / "cache"
