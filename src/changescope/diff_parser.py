"""Git diff parser: split a unified diff into per-file changes.

Parses the output of `git diff` into `ChangedFile` records carrying the
file's status, line counts and its own section of the diff text. This is
the input layer for impact analysis.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from changescope.models import ChangedFile

HUNK_HEADER = re.compile(r"@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


@dataclass
class _FileSection:
    path: str
    status: str = "modified"
    previous_path: str | None = None
    lines: list[str] = field(default_factory=list)
    added_lines: int = 0
    removed_lines: int = 0
    in_hunk: bool = False

    def to_changed_file(self) -> ChangedFile:
        body = "\n".join(self.lines).strip("\n")
        return ChangedFile(
            path=self.path,
            status=self.status,
            added_lines=self.added_lines,
            removed_lines=self.removed_lines,
            diff_text=body or None,
            previous_path=self.previous_path,
        )


def parse_diff(diff_text: str) -> list[ChangedFile]:
    """Parse unified diff text into one `ChangedFile` per touched file.

    `diff_text` on each result holds the hunks only (headers stripped);
    binary or mode-only changes get `None`. Full file contents are not
    available from a diff and are left for the caller to fill in.
    """
    files: list[ChangedFile] = []
    current: _FileSection | None = None

    for line in diff_text.splitlines():
        if line.startswith("diff --git"):
            if current:
                files.append(current.to_changed_file())
            parts = line.split(" b/")
            current = _FileSection(path=parts[-1] if len(parts) > 1 else "")
            continue

        if current is None:
            continue

        if not current.in_hunk:
            if line.startswith("new file"):
                current.status = "added"
            elif line.startswith("deleted file"):
                current.status = "removed"
            elif line.startswith("rename from "):
                current.previous_path = line[len("rename from "):]
                current.status = "renamed"
            elif line.startswith("rename to "):
                current.path = line[len("rename to "):]
            elif line.startswith("+++ b/"):
                current.path = line[6:]
            elif line.startswith("--- a/") and current.status == "removed":
                current.path = line[6:]

        if line.startswith("@@"):
            if HUNK_HEADER.match(line):
                current.in_hunk = True
                current.lines.append(line)
        elif current.in_hunk:
            current.lines.append(line)
            if line.startswith("+"):
                current.added_lines += 1
            elif line.startswith("-"):
                current.removed_lines += 1

    if current:
        files.append(current.to_changed_file())

    return files
