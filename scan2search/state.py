"""
Completion ledger: which pages are done, per stage.

A page output on disk only counts as complete when the ledger holds a record
for it whose size, checksum and settings tag all match. Records are written
after every finished page, so an interrupted run resumes at the first page
without a valid record.
"""

from __future__ import annotations

import hashlib
import json
import logging
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path

from .layout import has_content

log = logging.getLogger(__name__)

STAGE_RASTER = "raster"
STAGE_OCR = "ocr"
STAGE_MERGE = "merge"

STATE_VERSION = 1


def file_sha256(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 16), b""):
            h.update(chunk)
    return h.hexdigest()


def _key(stage: str, page: int) -> str:
    return f"{stage}:{page:04d}"


class CompletionLedger:
    def __init__(self, path: Path, document_name: str = ""):
        self.path = Path(path)
        self.document_name = document_name
        self.records: dict[str, dict] = {}
        self.load()

    def load(self) -> None:
        self.records = {}
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            log.warning("State file %s unreadable, starting fresh: %s", self.path, e)
            return
        if not isinstance(data, dict) or data.get("version") != STATE_VERSION:
            log.warning("State file %s has an unknown format, starting fresh", self.path)
            return
        records = data.get("records")
        if isinstance(records, dict):
            self.records = records

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": STATE_VERSION,
            "document": self.document_name,
            "updated_at": time.strftime("%Y-%m-%d %H:%M:%S"),
            "records": self.records,
        }
        # temp file in the same directory so the rename is atomic
        with tempfile.NamedTemporaryFile(
            mode="w", encoding="utf-8", dir=str(self.path.parent),
            delete=False, suffix=".tmp",
        ) as tmp:
            json.dump(data, tmp, indent=2, sort_keys=True)
            tmp_path = Path(tmp.name)
        tmp_path.replace(self.path)

    def record(self, stage: str, page: int) -> dict | None:
        return self.records.get(_key(stage, page))

    def is_complete(self, stage: str, page: int, output: Path, settings: str) -> bool:
        """Check the output file against its completion record."""
        if not has_content(output):
            return False
        rec = self.record(stage, page)
        if rec is None:
            log.info("%s page %d: %s has no completion record", stage, page, output.name)
            return False
        if rec.get("settings") != settings:
            log.info(
                "%s page %d: made with different settings (%s, now %s)",
                stage, page, rec.get("settings"), settings,
            )
            return False
        if rec.get("size") != output.stat().st_size or rec.get("sha256") != file_sha256(output):
            log.warning("%s page %d: %s changed since it was recorded", stage, page, output.name)
            return False
        return True

    def mark_complete(self, stage: str, page: int, output: Path, settings: str) -> dict:
        rec = {
            "stage": stage,
            "page": page,
            "path": str(output),
            "size": output.stat().st_size,
            "sha256": file_sha256(output),
            "settings": settings,
            "completed_at": time.strftime("%Y-%m-%d %H:%M:%S"),
        }
        self.records[_key(stage, page)] = rec
        self.save()
        return rec

    def forget(self, stage: str, page: int) -> None:
        if self.records.pop(_key(stage, page), None) is not None:
            self.save()

    def completed_pages(self, stage: str) -> list[int]:
        """Pages with a record for this stage (records only; files are not checked)."""
        return sorted(r["page"] for r in self.records.values() if r.get("stage") == stage)


@dataclass
class StageReport:
    """Which pages a stage produced and which it found already complete."""

    stage: str
    processed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.processed) + len(self.skipped)
