"""
Pipeline runner: page count, raster, OCR, merge, in that order.

The filesystem plus the completion ledger is the only state. Running the
pipeline again after an interruption redoes exactly the pages that are
not complete; running it after success does nothing.

Two runs against the same document at the same time are not supported;
nothing guards against it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .config import Settings
from .errors import PipelineError
from .layout import Document, LevelsAdjustment, WorkLayout, has_content
from .merge import MergeStage
from .ocr import OcrStage
from .pageinfo import PageInfoResolver
from .raster import PageCallback, RasterStage
from .state import STAGE_OCR, STAGE_RASTER, CompletionLedger, StageReport
from .tools import ToolInvoker

log = logging.getLogger(__name__)

STATUS_COMPLETE = "complete"
STATUS_ALREADY_COMPLETE = "already_complete"

# (stage name, total pages) -> per-page callback, or None
ProgressFactory = Callable[[str, int], Optional[PageCallback]]


@dataclass
class PipelineResult:
    document: Document
    total_pages: int
    final_path: Path
    status: str
    reports: dict[str, StageReport] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


class PipelineRunner:
    def __init__(self, settings: Settings, invoker: ToolInvoker | None = None):
        self.settings = settings
        self.invoker = invoker or ToolInvoker(timeout=settings.tool_timeout)
        self.resolver = PageInfoResolver(self.invoker, settings.pdfinfo)

    def layout_for(self, document: Document) -> WorkLayout:
        return WorkLayout(
            document=document,
            raster_dir=self.settings.raster_dir,
            ocr_dir=self.settings.ocr_dir,
            output_dir=self.settings.output_dir,
        )

    def ledger_for(self, layout: WorkLayout) -> CompletionLedger:
        return CompletionLedger(layout.state_path, layout.document.path.name)

    def page_count(self, document: Document) -> int:
        try:
            return self.resolver.get_page_count(document.path)
        except PipelineError as e:
            raise e.at("page count")

    def stages_for(
        self, layout: WorkLayout, ledger: CompletionLedger, levels: LevelsAdjustment | None
    ) -> tuple[RasterStage, OcrStage, MergeStage]:
        raster = RasterStage(
            self.invoker, self.settings.magick, layout, ledger,
            density=self.settings.density,
            quality=self.settings.quality,
            levels=levels,
        )
        ocr = OcrStage(
            self.invoker, self.settings.tesseract, layout, ledger,
            language=self.settings.language,
        )
        merge = MergeStage(
            self.invoker, self.settings.pdftk, layout, self.resolver,
            via_shell=self.settings.merge_via_shell,
            ledger=ledger,
            settings_tag=f"{raster.settings_tag};lang={ocr.language}",
        )
        return raster, ocr, merge

    def is_already_complete(self, merge: MergeStage, total_pages: int) -> bool:
        final = merge.layout.final_path
        if not has_content(final):
            return False
        if not merge.is_final_current():
            log.info("Existing %s was not built with the current settings, rebuilding", final.name)
            return False
        try:
            merged = self.resolver.get_page_count(final)
        except PipelineError as e:
            log.warning("Existing %s could not be checked, rebuilding: %s", final.name, e)
            return False
        if merged != total_pages:
            log.info(
                "Existing %s has %d of %d pages, rebuilding", final.name, merged, total_pages
            )
            return False
        return True

    def summarize(self, document: Document, total_pages: int) -> dict[str, int]:
        """Pages recorded complete per stage, for showing resume status."""
        layout = self.layout_for(document)
        ledger = self.ledger_for(layout)
        return {
            STAGE_RASTER: sum(
                1 for p in ledger.completed_pages(STAGE_RASTER)
                if p < total_pages and has_content(layout.raster_path(p))
            ),
            STAGE_OCR: sum(
                1 for p in ledger.completed_pages(STAGE_OCR)
                if p < total_pages and has_content(layout.ocr_path(p))
            ),
            "final": int(has_content(layout.final_path)),
        }

    def run(
        self,
        document: Document,
        levels: LevelsAdjustment | None = None,
        total_pages: int | None = None,
        progress: ProgressFactory | None = None,
    ) -> PipelineResult:
        layout = self.layout_for(document)
        if total_pages is None:
            total_pages = self.page_count(document)

        log.info(
            "Pipeline start: %s, %d pages, levels=%s, lang=%s",
            document.path.name, total_pages,
            levels.level_arg if levels else "none", self.settings.language,
        )

        ledger = self.ledger_for(layout)
        raster, ocr, merge = self.stages_for(layout, ledger, levels)

        if self.is_already_complete(merge, total_pages):
            log.info("%s is already complete, nothing to do", layout.final_path.name)
            return PipelineResult(
                document, total_pages, layout.final_path, STATUS_ALREADY_COMPLETE
            )

        result = PipelineResult(document, total_pages, layout.final_path, STATUS_COMPLETE)

        result.reports[raster.name] = raster.run(
            total_pages, progress(raster.name, total_pages) if progress else None
        )
        result.reports[ocr.name] = ocr.run(
            total_pages, progress(ocr.name, total_pages) if progress else None
        )
        merge.run(total_pages)
        result.warnings.extend(merge.warnings)

        log.info(
            "Pipeline done: %s (%d warnings)", layout.final_path, len(result.warnings)
        )
        return result
