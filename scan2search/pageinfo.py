"""Page counts from the PDF info tool."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .errors import ParseError, ToolExecutionError, ZeroPageError
from .tools import ToolInvoker

log = logging.getLogger(__name__)

PAGES_RE = re.compile(r"^Pages:\s*(\d+)\s*$", re.MULTILINE)


def parse_page_count(output: str) -> int | None:
    """First 'Pages: N' line wins."""
    m = PAGES_RE.search(output)
    return int(m.group(1)) if m else None


class PageInfoResolver:
    def __init__(self, invoker: ToolInvoker, pdfinfo: str | Path):
        self.invoker = invoker
        self.pdfinfo = pdfinfo

    def get_page_count(self, pdf_path: Path) -> int:
        result = self.invoker.run(self.pdfinfo, [pdf_path])
        if not result.ok:
            raise ToolExecutionError(
                f"page info failed for {Path(pdf_path).name}",
                exit_code=result.exit_code,
                output=result.output,
            )

        pages = parse_page_count(result.output)
        if pages is None:
            raise ParseError(
                f"no 'Pages:' line in page info output for {Path(pdf_path).name}",
                output=result.output,
            )
        if pages == 0:
            raise ZeroPageError(
                f"{Path(pdf_path).name} reports zero pages (corrupt document?)",
                output=result.output,
            )

        log.debug("Page count: %s -> %d", Path(pdf_path).name, pages)
        return pages
