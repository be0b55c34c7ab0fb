"""
Shared fixtures.

Tests use real files in temporary directories; only the external tools are
replaced (see fakes.py).
"""

import os

import pytest

from scan2search.config import ENV_PREFIX, Settings
from scan2search.layout import Document, WorkLayout
from scan2search.state import CompletionLedger

from fakes import FakeTools, write_fake_pdf


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep SCAN2SEARCH_* settings (and anything load_dotenv adds) out of other tests."""
    for key in [k for k in os.environ if k.startswith(ENV_PREFIX)]:
        monkeypatch.delenv(key)
    yield
    # load_dotenv writes straight to os.environ; monkeypatch restores the rest
    for key in [k for k in os.environ if k.startswith(ENV_PREFIX)]:
        os.environ.pop(key, None)


@pytest.fixture
def fake_tools():
    return FakeTools()


@pytest.fixture
def settings(tmp_path):
    s = Settings(
        source_dir=tmp_path / "Source",
        raster_dir=tmp_path / "Work" / "raster",
        ocr_dir=tmp_path / "Work" / "ocr",
        output_dir=tmp_path / "Output",
    )
    for d in s.directories:
        d.mkdir(parents=True, exist_ok=True)
    return s


@pytest.fixture
def make_document(settings):
    def _make(name: str = "doc", pages: int = 3) -> Document:
        path = write_fake_pdf(
            settings.source_dir / f"{name}.pdf", [f"src-{i}" for i in range(pages)]
        )
        return Document.from_path(path)
    return _make


@pytest.fixture
def document(make_document):
    return make_document("doc", 3)


@pytest.fixture
def layout(settings, document):
    return WorkLayout(
        document=document,
        raster_dir=settings.raster_dir,
        ocr_dir=settings.ocr_dir,
        output_dir=settings.output_dir,
    )


@pytest.fixture
def ledger(layout):
    return CompletionLedger(layout.state_path, layout.document.path.name)
