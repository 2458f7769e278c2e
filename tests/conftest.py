"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from crossposter.config import clear_settings


if TYPE_CHECKING:
    from collections.abc import Generator


_ENV_PREFIXES = ("CROSSPOSTER_",)


@pytest.fixture(autouse=True)
def isolated_settings(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path_factory: pytest.TempPathFactory,
) -> Generator[None, None, None]:
    """Keep host configuration out of every test.

    Strips ``CROSSPOSTER_*`` variables and points ``HOME`` at an empty
    directory so no user-level config file is picked up.
    """
    import os

    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path_factory.mktemp("home")))
    clear_settings()
    yield
    clear_settings()
