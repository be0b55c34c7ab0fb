"""
Raster stage: one image per PDF page.

Each page is captured to a temporary file first; the optional levels pass
(or a rename) produces the final image, so a half-written image never sits
at the final path. The first failing page stops the stage.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from PIL import Image

from .errors import PipelineError, StageError, ToolExecutionError
from .layout import LevelsAdjustment, WorkLayout, has_content
from .state import STAGE_RASTER, CompletionLedger, StageReport
from .tools import ToolInvoker

log = logging.getLogger(__name__)

DEFAULT_DENSITY = 300
DEFAULT_QUALITY = 90
BACKGROUND = "white"

PageCallback = Callable[[int, bool], None]


def capture_args(source: Path, index: int, out: Path, density: int, quality: int) -> list[str]:
    """Converter arguments for one page, flattening transparency onto white."""
    return [
        "convert",
        "-density", str(density),
        f"{source}[{index}]",
        "-quality", str(quality),
        "-background", BACKGROUND,
        "-alpha", "remove",
        "-alpha", "off",
        str(out),
    ]


def level_args(src: Path, out: Path, levels: LevelsAdjustment) -> list[str]:
    return ["convert", str(src), "-level", levels.level_arg, str(out)]


def verify_image(path: Path) -> str | None:
    """Return None if the file decodes as an image, else the reason it doesn't."""
    try:
        with Image.open(path) as img:
            img.verify()
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        return str(e) or type(e).__name__
    return None


def _remove(path: Path) -> None:
    path.unlink(missing_ok=True)


class RasterStage:
    name = STAGE_RASTER

    def __init__(
        self,
        invoker: ToolInvoker,
        magick: str | Path,
        layout: WorkLayout,
        ledger: CompletionLedger,
        density: int = DEFAULT_DENSITY,
        quality: int = DEFAULT_QUALITY,
        levels: LevelsAdjustment | None = None,
    ):
        self.invoker = invoker
        self.magick = magick
        self.layout = layout
        self.ledger = ledger
        self.density = density
        self.quality = quality
        self.levels = levels

    @property
    def settings_tag(self) -> str:
        level = f"{self.levels.black_point},{self.levels.white_point}" if self.levels else "none"
        return f"density={self.density};quality={self.quality};level={level}"

    def is_page_complete(self, index: int) -> bool:
        return self.ledger.is_complete(
            self.name, index, self.layout.raster_path(index), self.settings_tag
        )

    def run(self, total_pages: int, on_page: PageCallback | None = None) -> StageReport:
        report = StageReport(self.name)
        self.layout.raster_dir.mkdir(parents=True, exist_ok=True)

        for index in range(total_pages):
            skipped = self.is_page_complete(index)
            if skipped:
                log.info("Raster page %d: already done, skipping", index)
                report.skipped.append(index)
            else:
                try:
                    self.convert_page(index)
                except PipelineError as e:
                    raise e.at(self.name, index)
                report.processed.append(index)
            if on_page:
                on_page(index, skipped)

        log.info(
            "Raster stage done: %d converted, %d skipped",
            len(report.processed), len(report.skipped),
        )
        return report

    def convert_page(self, index: int) -> Path:
        source = self.layout.document.path
        temp = self.layout.raster_temp_path(index)
        final = self.layout.raster_path(index)

        self.ledger.forget(self.name, index)
        _remove(temp)
        _remove(final)

        try:
            result = self.invoker.run(
                self.magick, capture_args(source, index, temp, self.density, self.quality)
            )
            if not result.ok:
                raise ToolExecutionError(
                    f"converter failed on {source.name}[{index}]",
                    exit_code=result.exit_code,
                    output=result.output,
                )
            if not has_content(temp):
                raise StageError(
                    f"converter reported success but wrote no image ({temp.name})",
                    output=result.output,
                )

            if self.levels:
                result = self.invoker.run(self.magick, level_args(temp, final, self.levels))
                if not result.ok:
                    raise ToolExecutionError(
                        f"levels adjustment {self.levels.level_arg} failed",
                        exit_code=result.exit_code,
                        output=result.output,
                    )
                _remove(temp)
            else:
                temp.replace(final)

            if not has_content(final):
                raise StageError(f"page image {final.name} missing after conversion")
            problem = verify_image(final)
            if problem:
                raise StageError(f"page image {final.name} does not decode: {problem}")
        except PipelineError:
            _remove(temp)
            _remove(final)
            log.error("Raster page %d failed, stopping stage", index)
            raise

        self.ledger.mark_complete(self.name, index, final, self.settings_tag)
        log.info("Raster page %d: %s (%d bytes)", index, final.name, final.stat().st_size)
        return final
