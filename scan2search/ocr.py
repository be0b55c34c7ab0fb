"""OCR stage: one single-page searchable PDF per page image."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .errors import ConfigurationError, OcrError, PipelineError, StageError
from .layout import WorkLayout, has_content
from .raster import PageCallback
from .state import STAGE_OCR, CompletionLedger, StageReport, file_sha256
from .tools import ToolInvoker

log = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "eng"
OUTPUT_CONFIG = "pdf"

# Tesseract wording for missing or unreadable traineddata, across 3.x-5.x
MISSING_LANGUAGE_RE = re.compile(
    r"Failed loading language|Error opening data file|couldn't load any languages",
    re.IGNORECASE,
)


def ocr_args(image: Path, output_base: Path, language: str) -> list[str]:
    return [str(image), str(output_base), "-l", language, OUTPUT_CONFIG]


def is_missing_language(output: str) -> bool:
    return bool(MISSING_LANGUAGE_RE.search(output))


class OcrStage:
    name = STAGE_OCR

    def __init__(
        self,
        invoker: ToolInvoker,
        tesseract: str | Path,
        layout: WorkLayout,
        ledger: CompletionLedger,
        language: str = DEFAULT_LANGUAGE,
    ):
        self.invoker = invoker
        self.tesseract = tesseract
        self.layout = layout
        self.ledger = ledger
        self.language = language

    def settings_tag(self, index: int) -> str:
        """Language plus the checksum of the image the page was read from."""
        image = self.layout.raster_path(index)
        source = file_sha256(image) if has_content(image) else "missing"
        return f"lang={self.language};source={source}"

    def is_page_complete(self, index: int) -> bool:
        return self.ledger.is_complete(
            self.name, index, self.layout.ocr_path(index), self.settings_tag(index)
        )

    def run(self, total_pages: int, on_page: PageCallback | None = None) -> StageReport:
        report = StageReport(self.name)
        self.layout.ocr_dir.mkdir(parents=True, exist_ok=True)

        for index in range(total_pages):
            skipped = self.is_page_complete(index)
            if skipped:
                log.info("OCR page %d: already done, skipping", index)
                report.skipped.append(index)
            else:
                try:
                    self.recognize_page(index)
                except PipelineError as e:
                    raise e.at(self.name, index)
                report.processed.append(index)
            if on_page:
                on_page(index, skipped)

        log.info(
            "OCR stage done: %d recognized, %d skipped",
            len(report.processed), len(report.skipped),
        )
        return report

    def recognize_page(self, index: int) -> Path:
        image = self.layout.raster_path(index)
        output = self.layout.ocr_path(index)

        if not has_content(image):
            raise StageError(
                f"page image {image.name} is missing; the raster stage output is "
                f"incomplete (corrupted earlier run?)"
            )

        self.ledger.forget(self.name, index)
        output.unlink(missing_ok=True)

        result = self.invoker.run(
            self.tesseract, ocr_args(image, self.layout.ocr_base(index), self.language)
        )
        if not result.ok:
            output.unlink(missing_ok=True)
            if is_missing_language(result.output):
                log.error("OCR page %d: language data for '%s' not found", index, self.language)
                raise ConfigurationError(
                    f"OCR language data for '{self.language}' is not installed",
                    language=self.language,
                    exit_code=result.exit_code,
                    output=result.output,
                )
            log.error("OCR page %d failed with exit code %d", index, result.exit_code)
            raise OcrError(
                f"OCR engine failed on {image.name}",
                exit_code=result.exit_code,
                output=result.output,
            )

        if not has_content(output):
            raise OcrError(
                f"OCR engine exited 0 but {output.name} was not written",
                exit_code=result.exit_code,
                output=result.output,
            )

        self.ledger.mark_complete(self.name, index, output, self.settings_tag(index))
        log.info("OCR page %d: %s (%d bytes)", index, output.name, output.stat().st_size)
        return output
