"""
Settings, tool discovery and directory setup.

Values come from SCAN2SEARCH_* environment variables, optionally provided
through a .env file.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .errors import ToolExecutionError
from .ocr import DEFAULT_LANGUAGE
from .raster import DEFAULT_DENSITY, DEFAULT_QUALITY
from .tools import ToolInvoker

log = logging.getLogger(__name__)

ENV_PREFIX = "SCAN2SEARCH_"

DEFAULT_SOURCE_DIR = Path("Source")
DEFAULT_RASTER_DIR = Path("Work") / "raster"
DEFAULT_OCR_DIR = Path("Work") / "ocr"
DEFAULT_OUTPUT_DIR = Path("Output")

# tool role -> (default executable, version arguments, accepted exit codes)
TOOL_CHECKS = {
    "magick": ("magick", ["-version"], {0}),
    # older Poppler releases print the version and exit 99
    "pdfinfo": ("pdfinfo", ["-v"], {0, 99}),
    "tesseract": ("tesseract", ["--version"], {0}),
    "pdftk": ("pdftk", ["--version"], {0}),
}


@dataclass
class Settings:
    source_dir: Path = DEFAULT_SOURCE_DIR
    raster_dir: Path = DEFAULT_RASTER_DIR
    ocr_dir: Path = DEFAULT_OCR_DIR
    output_dir: Path = DEFAULT_OUTPUT_DIR
    magick: str = "magick"
    pdfinfo: str = "pdfinfo"
    tesseract: str = "tesseract"
    pdftk: str = "pdftk"
    density: int = DEFAULT_DENSITY
    quality: int = DEFAULT_QUALITY
    language: str = DEFAULT_LANGUAGE
    tool_timeout: float | None = None
    merge_via_shell: bool = False

    @property
    def directories(self) -> list[Path]:
        return [self.source_dir, self.raster_dir, self.ocr_dir, self.output_dir]

    def tool_path(self, role: str) -> str:
        return getattr(self, role)


@dataclass
class ToolProblem:
    tool: str
    path: str
    reason: str


def _env(name: str) -> str | None:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{ENV_PREFIX}{name} must be at least {minimum}, got {value}")
    return value


def _env_float(name: str) -> float | None:
    raw = _env(name)
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be positive, got {value}")
    return value


def _env_bool(name: str) -> bool:
    raw = _env(name)
    return raw is not None and raw.lower() in ("1", "true", "yes", "on")


def load_settings(env_file: str | Path | None = None) -> Settings:
    load_dotenv(Path(env_file) if env_file else Path.cwd() / ".env")

    s = Settings()
    s.source_dir = Path(_env("SOURCE_DIR") or DEFAULT_SOURCE_DIR).expanduser()
    s.raster_dir = Path(_env("RASTER_DIR") or DEFAULT_RASTER_DIR).expanduser()
    s.ocr_dir = Path(_env("OCR_DIR") or DEFAULT_OCR_DIR).expanduser()
    s.output_dir = Path(_env("OUTPUT_DIR") or DEFAULT_OUTPUT_DIR).expanduser()

    for role, (default, _, _) in TOOL_CHECKS.items():
        setattr(s, role, _env(role.upper()) or shutil.which(default) or default)

    s.density = _env_int("DENSITY", DEFAULT_DENSITY)
    s.quality = _env_int("QUALITY", DEFAULT_QUALITY)
    if s.quality > 100:
        raise ValueError(f"{ENV_PREFIX}QUALITY must be at most 100, got {s.quality}")
    s.language = _env("LANGUAGE") or DEFAULT_LANGUAGE
    s.tool_timeout = _env_float("TOOL_TIMEOUT")
    s.merge_via_shell = _env_bool("MERGE_VIA_SHELL")
    return s


def validate_tools(settings: Settings, invoker: ToolInvoker) -> list[ToolProblem]:
    """Check every external tool once; returns all problems found."""
    problems = []
    for role, (_, version_args, accepted) in TOOL_CHECKS.items():
        path = settings.tool_path(role)
        resolved = shutil.which(path)
        if resolved is None:
            problems.append(ToolProblem(role, path, "not found or not executable"))
            continue
        try:
            result = invoker.run(resolved, version_args)
        except ToolExecutionError as e:
            problems.append(ToolProblem(role, resolved, e.message))
            continue
        if result.exit_code not in accepted:
            first_line = result.output.strip().splitlines()[0] if result.output.strip() else ""
            problems.append(ToolProblem(
                role, resolved,
                f"version check exited {result.exit_code}" + (f": {first_line}" if first_line else ""),
            ))
            continue
        log.info("Tool %s: %s", role, resolved)

    for p in problems:
        log.error("Tool %s (%s): %s", p.tool, p.path, p.reason)
    return problems


def ensure_directories(settings: Settings) -> None:
    for d in settings.directories:
        d.mkdir(parents=True, exist_ok=True)
