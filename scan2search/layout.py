"""Documents, page naming and where every artifact lives on disk."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

PAGE_DIGITS = 3
RASTER_SUFFIX = ".jpg"
PDF_SUFFIX = ".pdf"
PARTIAL_TAG = ".part"


@dataclass(frozen=True)
class Document:
    path: Path
    base_name: str

    @classmethod
    def from_path(cls, path: str | Path) -> Document:
        p = Path(path).expanduser()
        return cls(path=p, base_name=p.stem)


@dataclass(frozen=True)
class LevelsAdjustment:
    """Black/white point remap in percent, applied to every page of a run."""

    black_point: int
    white_point: int

    def __post_init__(self):
        if not 0 <= self.black_point < self.white_point <= 100:
            raise ValueError(
                f"levels must satisfy 0 <= black < white <= 100 "
                f"(got black={self.black_point}, white={self.white_point})"
            )

    @property
    def level_arg(self) -> str:
        return f"{self.black_point}%,{self.white_point}%"


def page_name(base_name: str, index: int) -> str:
    return f"{base_name}-{index:0{PAGE_DIGITS}d}"


@dataclass(frozen=True)
class WorkLayout:
    """Paths for one document's intermediate and final files."""

    document: Document
    raster_dir: Path
    ocr_dir: Path
    output_dir: Path

    @property
    def base_name(self) -> str:
        return self.document.base_name

    def raster_path(self, index: int) -> Path:
        return self.raster_dir / f"{page_name(self.base_name, index)}{RASTER_SUFFIX}"

    def raster_temp_path(self, index: int) -> Path:
        # keeps the image suffix so the converter picks the same output format
        return self.raster_dir / f"{page_name(self.base_name, index)}{PARTIAL_TAG}{RASTER_SUFFIX}"

    def ocr_base(self, index: int) -> Path:
        """Output base handed to the OCR engine, which appends '.pdf' itself."""
        return self.ocr_dir / page_name(self.base_name, index)

    def ocr_path(self, index: int) -> Path:
        return self.ocr_dir / f"{page_name(self.base_name, index)}{PDF_SUFFIX}"

    @property
    def final_path(self) -> Path:
        return self.output_dir / f"{self.base_name}_final{PDF_SUFFIX}"

    @property
    def final_temp_path(self) -> Path:
        return self.output_dir / f"{self.base_name}_final{PARTIAL_TAG}{PDF_SUFFIX}"

    @property
    def progress_dir(self) -> Path:
        return self.output_dir / f"{self.base_name}_progress"

    @property
    def state_path(self) -> Path:
        return self.progress_dir / "state.json"

    def merge_manifest(self, total_pages: int) -> list[Path]:
        """Per-page OCR PDFs in final page order."""
        return [self.ocr_path(i) for i in range(total_pages)]


def has_content(path: Path) -> bool:
    """True if the file exists with nonzero size."""
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False
