from collections.abc import Generator
from pathlib import Path

import pytest

from ugraft import base, data


@pytest.fixture
def repo(tmp_path: Path) -> Generator[Path, None, None]:
    """A fresh, empty repository that all object and ref access goes to."""
    with data.change_git_dir(tmp_path):
        base.init()
        yield tmp_path


@pytest.fixture
def make_repository(tmp_path: Path):
    """Create additional repositories next to `repo`, e.g. as remotes."""

    def _make(name: str) -> Path:
        path = tmp_path / name
        path.mkdir()
        with data.change_git_dir(path):
            base.init()
        return path

    return _make
