"""
End-to-end pipeline tests with the fake tools.

Covers full runs, resume behaviour, the already-complete short-circuit
(including settings changes after a finished run) and failure propagation.
"""

import pytest

from scan2search.errors import ConfigurationError, ToolExecutionError, ZeroPageError
from scan2search.layout import Document, LevelsAdjustment
from scan2search.pipeline import STATUS_ALREADY_COMPLETE, STATUS_COMPLETE, PipelineRunner

from fakes import MISSING_LANGUAGE_OUTPUT, fake_pdf_pages, write_fake_pdf


@pytest.fixture
def runner(settings, fake_tools):
    return PipelineRunner(settings, fake_tools)


def test_three_page_document(runner, document, settings):
    result = runner.run(document)

    assert result.status == STATUS_COMPLETE
    assert result.total_pages == 3
    assert sorted(p.name for p in settings.raster_dir.glob("*.jpg")) == [
        "doc-000.jpg", "doc-001.jpg", "doc-002.jpg",
    ]
    assert sorted(p.name for p in settings.ocr_dir.glob("*.pdf")) == [
        "doc-000.pdf", "doc-001.pdf", "doc-002.pdf",
    ]
    assert result.final_path == settings.output_dir / "doc_final.pdf"
    assert len(fake_pdf_pages(result.final_path)) == 3
    assert result.warnings == []
    assert runner.resolver.get_page_count(result.final_path) == 3


def test_second_run_does_no_page_work(runner, document, fake_tools):
    first = runner.run(document)
    fake_tools.reset()

    second = runner.run(document)

    assert second.status == STATUS_ALREADY_COMPLETE
    assert fake_tools.calls_to("magick") == []
    assert fake_tools.calls_to("tesseract") == []
    assert fake_tools.calls_to("pdftk") == []
    assert runner.resolver.get_page_count(second.final_path) == first.total_pages


def test_language_change_redoes_ocr_despite_final(runner, document, settings, fake_tools):
    runner.run(document)
    fake_tools.reset()
    settings.language = "deu"

    result = runner.run(document)

    assert result.status == STATUS_COMPLETE
    assert fake_tools.calls_to("magick") == []
    assert len(fake_tools.calls_to("tesseract")) == 3
    assert len(fake_tools.calls_to("pdftk")) == 1
    assert fake_pdf_pages(result.final_path) == [f"page doc-{i:03d} deu" for i in range(3)]


def test_density_change_redoes_raster_and_merge(runner, document, settings, fake_tools):
    runner.run(document)
    fake_tools.reset()
    settings.density = 150

    result = runner.run(document)

    assert result.status == STATUS_COMPLETE
    assert result.reports["raster"].processed == [0, 1, 2]
    assert all(a[a.index("-density") + 1] == "150" for a in fake_tools.raster_captures())
    assert len(fake_tools.calls_to("pdftk")) == 1


def test_adding_levels_rebuilds_a_finished_document(runner, document, fake_tools):
    runner.run(document)
    fake_tools.reset()

    result = runner.run(document, levels=LevelsAdjustment(10, 90))

    assert result.status == STATUS_COMPLETE
    assert len(fake_tools.raster_levels()) == 3
    assert len(fake_tools.calls_to("pdftk")) == 1


def test_final_without_merge_record_is_rebuilt(runner, document, fake_tools):
    first = runner.run(document)
    ledger = runner.ledger_for(runner.layout_for(document))
    ledger.forget("merge", 0)
    fake_tools.reset()

    result = runner.run(document)

    assert result.status == STATUS_COMPLETE
    assert fake_tools.calls_to("tesseract") == []
    assert len(fake_tools.calls_to("pdftk")) == 1
    assert result.final_path == first.final_path


def test_rerun_without_final_only_merges(runner, document, fake_tools):
    result = runner.run(document)
    result.final_path.unlink()
    fake_tools.reset()

    again = runner.run(document)

    assert again.status == STATUS_COMPLETE
    assert fake_tools.calls_to("magick") == []
    assert fake_tools.calls_to("tesseract") == []
    assert len(fake_tools.calls_to("pdftk")) == 1
    assert again.reports["raster"].skipped == [0, 1, 2]
    assert again.reports["ocr"].skipped == [0, 1, 2]


def test_deleted_page_image_is_the_only_page_redone(runner, document, settings, fake_tools):
    result = runner.run(document)
    (settings.raster_dir / "doc-001.jpg").unlink()
    result.final_path.unlink()
    fake_tools.reset()

    again = runner.run(document)

    assert again.reports["raster"].processed == [1]
    assert [a[3] for a in fake_tools.raster_captures()] == [f"{document.path}[1]"]
    assert len(fake_pdf_pages(again.final_path)) == 3


def test_levels_adjustment_on_every_page(runner, document, fake_tools):
    runner.run(document, levels=LevelsAdjustment(10, 90))

    levels = fake_tools.raster_levels()
    assert len(levels) == 3
    assert all(args[args.index("-level") + 1] == "10%,90%" for args in levels)


def test_missing_language_on_second_page(runner, document, settings, fake_tools):
    fake_tools.ocr_failures[1] = (1, MISSING_LANGUAGE_OUTPUT.format(lang="eng"))

    with pytest.raises(ConfigurationError) as exc:
        runner.run(document)

    err = exc.value
    assert err.language == "eng"
    assert err.stage == "ocr"
    assert err.page == 1
    assert (settings.ocr_dir / "doc-000.pdf").exists()
    assert not (settings.ocr_dir / "doc-001.pdf").exists()
    assert not (settings.ocr_dir / "doc-002.pdf").exists()
    assert fake_tools.calls_to("pdftk") == []
    assert not (settings.output_dir / "doc_final.pdf").exists()


def test_resume_after_failure_continues_at_failed_page(runner, document, fake_tools):
    fake_tools.ocr_failures[1] = (1, "Error in pixReadStream")
    with pytest.raises(ToolExecutionError):
        runner.run(document)
    fake_tools.ocr_failures.clear()
    fake_tools.reset()

    result = runner.run(document)

    assert result.status == STATUS_COMPLETE
    assert fake_tools.calls_to("magick") == []
    assert [page_of(a[0]) for a in fake_tools.calls_to("tesseract")] == [1, 2]


def page_of(path: str) -> int:
    return int(path.rsplit("-", 1)[1].split(".")[0])


def test_merge_page_count_mismatch_does_not_halt(runner, document, fake_tools):
    fake_tools.merge_drop_pages = 1

    result = runner.run(document)

    assert result.status == STATUS_COMPLETE
    assert result.final_path.exists()
    assert len(result.warnings) == 1


def test_short_final_is_rebuilt(runner, document, settings, fake_tools):
    runner.run(document)
    write_fake_pdf(settings.output_dir / "doc_final.pdf", ["only one"])
    fake_tools.reset()

    result = runner.run(document)

    assert result.status == STATUS_COMPLETE
    assert len(fake_tools.calls_to("pdftk")) == 1
    assert len(fake_pdf_pages(result.final_path)) == 3


def test_zero_page_document(runner, settings):
    path = write_fake_pdf(settings.source_dir / "empty.pdf", [])

    with pytest.raises(ZeroPageError) as exc:
        runner.run(Document.from_path(path))

    assert exc.value.stage == "page count"


def test_progress_callbacks(runner, document):
    seen = []

    def progress(stage, total):
        return lambda index, skipped: seen.append((stage, total, index, skipped))

    runner.run(document, progress=progress)

    assert seen == [("raster", 3, i, False) for i in range(3)] + [
        ("ocr", 3, i, False) for i in range(3)
    ]


def test_summarize(runner, document):
    assert runner.summarize(document, 3) == {"raster": 0, "ocr": 0, "final": 0}

    runner.run(document)

    assert runner.summarize(document, 3) == {"raster": 3, "ocr": 3, "final": 1}
