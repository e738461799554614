from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.dita_builder import DitaContentBuilder, DitaOtHomeBuilder


@pytest.fixture
def dita_home(tmp_path: Path) -> DitaOtHomeBuilder:
    """Provide a fake DITA-OT 4.x home with an executable launcher in bin/."""
    return DitaOtHomeBuilder(tmp_path / "dita ot").with_launcher().with_version("4.2.1")


@pytest.fixture
def content(tmp_path: Path) -> DitaContentBuilder:
    """Provide a content builder rooted at the pytest tmp_path."""
    return DitaContentBuilder(tmp_path / "content")
