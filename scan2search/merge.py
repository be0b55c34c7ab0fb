"""
Merge stage: concatenate the per-page OCR PDFs into the final document.

The merge tool is only run once every page is present, and it writes to a
temporary file that is renamed into place on success. Whatever happens,
no partially written final document is left behind.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import MergeError, MissingPagesError, PipelineError, UnsafePathError
from .layout import WorkLayout, has_content
from .pageinfo import PageInfoResolver
from .state import STAGE_MERGE, CompletionLedger
from .tools import ToolInvoker

log = logging.getLogger(__name__)

# the final document is recorded in the ledger as a single "page"
FINAL_RECORD = 0

# Windows CreateProcess limit; the shell form exists for hosts where the
# merge tool is launched through a command interpreter
MAX_COMMAND_LINE = 32767
UNSAFE_SHELL_CHARS = ('"', "\\", "$", "`", "\n", "\r", "\x00")


def merge_args(pages: list[Path], output: Path) -> list[str]:
    return [str(p) for p in pages] + ["cat", "output", str(output)]


def quote_path(path: str | Path) -> str:
    """Double-quote one path for a shell command line, refusing unsafe ones."""
    text = str(path)
    bad = sorted({c for c in text if c in UNSAFE_SHELL_CHARS})
    if bad:
        raise UnsafePathError(
            f"path {text!r} contains characters that cannot be quoted safely: "
            + " ".join(repr(c) for c in bad)
        )
    return f'"{text}"'


def build_command_line(tool: str | Path, pages: list[Path], output: Path) -> str:
    parts = [quote_path(tool)]
    parts.extend(quote_path(p) for p in pages)
    parts.extend(["cat", "output", quote_path(output)])
    line = " ".join(parts)
    if len(line) > MAX_COMMAND_LINE:
        raise MergeError(
            f"merge command line is {len(line)} characters, over the "
            f"{MAX_COMMAND_LINE} limit; shorten the directory paths or disable shell mode"
        )
    return line


def _remove(path: Path) -> None:
    path.unlink(missing_ok=True)


class MergeStage:
    name = STAGE_MERGE

    def __init__(
        self,
        invoker: ToolInvoker,
        pdftk: str | Path,
        layout: WorkLayout,
        resolver: PageInfoResolver,
        via_shell: bool = False,
        ledger: CompletionLedger | None = None,
        settings_tag: str = "",
    ):
        self.invoker = invoker
        self.pdftk = pdftk
        self.layout = layout
        self.resolver = resolver
        self.via_shell = via_shell
        self.ledger = ledger
        self.settings_tag = settings_tag
        self.warnings: list[str] = []

    def is_final_current(self) -> bool:
        """True if the final document was built by this stage with the current settings."""
        if self.ledger is None:
            return False
        return self.ledger.is_complete(
            self.name, FINAL_RECORD, self.layout.final_path, self.settings_tag
        )

    def missing_pages(self, total_pages: int) -> list[int]:
        return [i for i in range(total_pages) if not has_content(self.layout.ocr_path(i))]

    def run(self, total_pages: int) -> Path:
        try:
            return self._merge(total_pages)
        except PipelineError as e:
            raise e.at(self.name)

    def _merge(self, total_pages: int) -> Path:
        missing = self.missing_pages(total_pages)
        if missing:
            shown = ", ".join(str(i) for i in missing[:20])
            more = f" (+{len(missing) - 20} more)" if len(missing) > 20 else ""
            raise MissingPagesError(
                f"{len(missing)} of {total_pages} page PDFs are missing: {shown}{more}",
                missing=missing,
            )

        manifest = self.layout.merge_manifest(total_pages)
        final = self.layout.final_path
        temp = self.layout.final_temp_path
        final.parent.mkdir(parents=True, exist_ok=True)
        _remove(temp)
        if self.ledger is not None:
            self.ledger.forget(self.name, FINAL_RECORD)

        log.info("Merging %d pages into %s", total_pages, final.name)
        try:
            if self.via_shell:
                result = self.invoker.run_line(build_command_line(self.pdftk, manifest, temp))
            else:
                result = self.invoker.run(self.pdftk, merge_args(manifest, temp))

            if not result.ok:
                raise MergeError(
                    f"merge tool failed building {final.name}",
                    exit_code=result.exit_code,
                    output=result.output,
                )
            if not has_content(temp):
                raise MergeError(
                    f"merge tool exited 0 but wrote no output ({temp.name})",
                    exit_code=result.exit_code,
                    output=result.output,
                )
        except PipelineError:
            _remove(temp)
            log.error("Merge failed, partial output removed")
            raise

        temp.replace(final)
        self.verify(final, total_pages)
        if self.ledger is not None:
            self.ledger.mark_complete(self.name, FINAL_RECORD, final, self.settings_tag)
        log.info("Final document: %s", final)
        return final

    def verify(self, final: Path, total_pages: int) -> None:
        """Compare the merged page count with the expected one.

        A mismatch is only a warning since the merge itself completed; a
        document whose page count cannot be read at all is discarded.
        """
        try:
            merged = self.resolver.get_page_count(final)
        except PipelineError as e:
            _remove(final)
            raise MergeError(
                f"could not read the page count of {final.name}; it was removed",
                exit_code=e.exit_code,
                output=e.output,
            ) from e

        if merged != total_pages:
            msg = (
                f"{final.name} has {merged} pages but the source has {total_pages}; "
                f"check the output"
            )
            log.warning(msg)
            self.warnings.append(msg)
