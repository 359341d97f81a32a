"""Local diff acquisition.

Reads the working tree's changes with ``git diff`` and splits them into
per-file entries. The full text goes into the job request; the per-file list
is what the CLI shows before the user decides to submit.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field

from dvmreview_core.errors import DiffError
from dvmreview_core.utils.code import is_code_file, is_excluded

logger = logging.getLogger(__name__)

_FILE_HEADER_RE = re.compile(r"^diff --git a/(?P<old>.+?) b/(?P<new>.+)$")


@dataclass
class DiffFile:
    filename: str
    status: str  # "added" | "modified" | "deleted" | "renamed"
    additions: int = 0
    deletions: int = 0
    patch: str = ""
    old_filename: str = ""


@dataclass
class DiffResult:
    output: str
    files: list[DiffFile] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.files


def _run_git(args: list[str], cwd: str) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=30,
        )
    except FileNotFoundError:
        raise DiffError("git is not installed or not on PATH.") from None
    except subprocess.TimeoutExpired:
        raise DiffError("git diff timed out.") from None


def parse_diff(text: str) -> list[DiffFile]:
    """Split unified ``git diff`` output into one DiffFile per changed path."""
    files: list[DiffFile] = []
    current: DiffFile | None = None
    lines: list[str] = []

    def _flush():
        if current is not None:
            current.patch = "\n".join(lines)
            files.append(current)

    in_hunk = False
    for line in text.splitlines():
        match = _FILE_HEADER_RE.match(line)
        if match:
            _flush()
            old, new = match.group("old"), match.group("new")
            current = DiffFile(filename=new, status="renamed" if old != new else "modified", old_filename=old)
            lines = [line]
            in_hunk = False
            continue
        if current is None:
            continue
        lines.append(line)
        if line.startswith("@@"):
            in_hunk = True
        elif not in_hunk:
            if line.startswith("new file mode"):
                current.status = "added"
            elif line.startswith("deleted file mode"):
                current.status = "deleted"
            elif line.startswith("rename from"):
                current.status = "renamed"
        elif line.startswith("+"):
            current.additions += 1
        elif line.startswith("-"):
            current.deletions += 1
    _flush()
    return files


def check_diffs(cwd: str = ".", exclude: list[str] | None = None) -> DiffResult:
    """Return the working tree's diff against HEAD, minus excluded and non-code files."""
    result = _run_git(["diff", "--no-color", "HEAD"], cwd)
    if result.returncode != 0:
        # A repository without commits has no HEAD to compare against.
        logger.debug("git diff HEAD failed (%s); retrying without HEAD", result.stderr.strip())
        result = _run_git(["diff", "--no-color"], cwd)
    if result.returncode != 0:
        raise DiffError(result.stderr.strip() or "git diff failed")

    patterns = exclude or []
    kept = []
    for f in parse_diff(result.stdout):
        if is_excluded(f.filename, patterns) or not is_code_file(f.filename):
            logger.debug("Leaving %s out of the diff", f.filename)
            continue
        kept.append(f)

    output = "\n".join(f.patch for f in kept)
    if output:
        output += "\n"
    return DiffResult(output=output, files=kept)
