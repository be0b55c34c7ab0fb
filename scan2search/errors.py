"""
Error taxonomy for the scan2search pipeline.

Every error carries enough context (stage, page, tool exit code and the
tool's captured output) to diagnose a failure without rerunning with more
verbosity.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every failure that halts the pipeline."""

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        page: int | None = None,
        exit_code: int | None = None,
        output: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.page = page
        self.exit_code = exit_code
        self.output = output

    def __str__(self) -> str:
        where = []
        if self.stage:
            where.append(self.stage)
        if self.page is not None:
            where.append(f"page {self.page}")
        prefix = f"[{' '.join(where)}] " if where else ""
        suffix = f" (exit code {self.exit_code})" if self.exit_code is not None else ""
        return f"{prefix}{self.message}{suffix}"

    def describe(self) -> str:
        """Multi-line report: what failed, where, and what the tool said."""
        lines = [f"{type(self).__name__}: {self.message}"]
        if self.stage:
            lines.append(f"  Stage:     {self.stage}")
        if self.page is not None:
            lines.append(f"  Page:      {self.page}")
        if self.exit_code is not None:
            lines.append(f"  Exit code: {self.exit_code}")
        if self.output:
            lines.append("  Tool output:")
            lines.extend(f"    {line}" for line in self.output.rstrip().splitlines())
        return "\n".join(lines)

    def at(self, stage: str, page: int | None = None) -> PipelineError:
        """Attach stage/page context if not already set. Returns self."""
        if self.stage is None:
            self.stage = stage
        if self.page is None:
            self.page = page
        return self


class ToolExecutionError(PipelineError):
    """An external tool exited nonzero or could not be started."""


class OcrError(ToolExecutionError):
    """The OCR engine failed, or claimed success without writing its output."""


class ParseError(PipelineError):
    """Expected structured text was absent from a tool's output."""


class ZeroPageError(PipelineError):
    """A document reported zero pages."""


class ConfigurationError(PipelineError):
    """The environment is missing something (e.g. OCR language data).

    Retrying will not help until the environment is fixed.
    """

    def __init__(self, message: str, *, language: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.language = language


class StageError(PipelineError):
    """An upstream artifact a stage depends on is missing or unusable."""


class MissingPagesError(PipelineError):
    """Per-page OCR output is incomplete, so the merge cannot start."""

    def __init__(self, message: str, *, missing: list[int], **kwargs):
        super().__init__(message, **kwargs)
        self.missing = list(missing)


class MergeError(PipelineError):
    """The merge tool failed or produced an unusable document."""


class UnsafePathError(MergeError):
    """A path cannot be placed safely on a shell command line."""
