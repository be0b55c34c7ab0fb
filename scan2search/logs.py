"""
Session log, written next to the outputs.

Every session appends a banner with the settings and tool paths in effect,
so a log excerpt on its own is enough to tell which run produced a page.
"""

from __future__ import annotations

import logging
from pathlib import Path

from . import __version__
from .config import Settings

LOGGER_NAME = "scan2search"
LOG_FILENAME = "scan2search.log"
LOG_FORMAT = "%(asctime)s  %(levelname)-5s  %(name)s: %(message)s"

log = logging.getLogger(LOGGER_NAME)


def _file_handler_for(path: Path) -> logging.FileHandler | None:
    resolved = str(path.resolve())
    for h in log.handlers:
        if isinstance(h, logging.FileHandler) and h.baseFilename == resolved:
            return h
    return None


def log_session_banner(settings: Settings) -> None:
    log.info("=" * 60)
    log.info("scan2search %s session started", __version__)
    log.info(
        "Directories: source=%s raster=%s ocr=%s output=%s",
        settings.source_dir, settings.raster_dir, settings.ocr_dir, settings.output_dir,
    )
    log.info(
        "Tools: magick=%s pdfinfo=%s tesseract=%s pdftk=%s",
        settings.magick, settings.pdfinfo, settings.tesseract, settings.pdftk,
    )
    log.info(
        "Raster %d dpi, quality %d; OCR language %s; timeout %s; merge via shell: %s",
        settings.density, settings.quality, settings.language,
        f"{settings.tool_timeout:g}s" if settings.tool_timeout else "none",
        "yes" if settings.merge_via_shell else "no",
    )


def setup_logging(settings: Settings) -> Path:
    """Attach the session log in the output directory. Returns its path."""
    settings.output_dir.mkdir(parents=True, exist_ok=True)
    log_path = settings.output_dir / LOG_FILENAME

    # one handler per log file, however often this is called
    if _file_handler_for(log_path) is None:
        handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        log.addHandler(handler)

    log.setLevel(logging.DEBUG)
    log_session_banner(settings)
    return log_path
