"""Markdown renderer for impact reports.

Generates GitHub-flavored markdown with:
  - Summary counts
  - Changed files grouped by status
  - Candidate affected files with the identifier that linked them
  - The agent's analysis (or a fallback summary)
"""

from __future__ import annotations

from changescope.models import Candidate, ChangedFile

MAX_FILES_PER_STATUS = 10

NO_AFFECTED_FILES_TEXT = "No affected files identified."
SEMANTIC_UNAVAILABLE_TEXT = (
    "Semantic analysis unavailable: the embedding servers could not index "
    "the repository, so no related files were searched."
)

_STATUS_LABELS = {
    "added": ("+", "Added"),
    "modified": ("~", "Modified"),
    "removed": ("-", "Removed"),
    "renamed": (">", "Renamed"),
}


def render_impact_report(
    changed_files: list[ChangedFile],
    candidates: list[Candidate],
    analysis: str = "",
    notes: list[str] | None = None,
    stats: dict | None = None,
    title: str = "",
) -> str:
    """Render the full impact analysis as a markdown document."""
    sections: list[str] = []

    sections.append(f"## ChangeScope Impact Analysis{': ' + title if title else ''}")
    sections.append("")

    if not changed_files:
        sections.append("> No changes detected.")
        sections.append("")
        sections.append(_footer())
        return "\n".join(sections)

    added = sum(f.added_lines for f in changed_files)
    removed = sum(f.removed_lines for f in changed_files)
    sections.append("| Files Changed | Lines | Candidates |")
    sections.append("|:---:|:---:|:---:|")
    sections.append(f"| {len(changed_files)} | +{added} / -{removed} | {len(candidates)} |")
    sections.append("")

    for note in notes or []:
        sections.append(f"> **Note:** {note}")
        sections.append("")

    sections.append("### Changed Files")
    sections.append("")
    sections.extend(_render_changed_files(changed_files))
    sections.append("")

    sections.append("### Potentially Affected Files")
    sections.append("")
    if candidates:
        sections.append("| File | Linked By | Similarity |")
        sections.append("|:-----|:----------|:----------:|")
        for c in candidates:
            score = f"{c.score:.2f}" if c.score is not None else "-"
            sections.append(f"| `{c.path}` | `{c.triggering_identifier}` | {score} |")
        sections.append("")
        sections.append("```")
        sections.extend(render_file_tree([c.path for c in candidates]))
        sections.append("```")
    else:
        sections.append(f"> {NO_AFFECTED_FILES_TEXT}")
    sections.append("")

    if analysis.strip():
        sections.append("### Analysis")
        sections.append("")
        sections.append(analysis.strip())
        sections.append("")

    if stats:
        sections.append("### Index Stats")
        sections.append(
            f"> {stats.get('chunks', 0)} chunks from {stats.get('files', 0)} files, "
            f"{stats.get('cache_hits', 0)} cache hits, "
            f"{stats.get('cache_misses', 0)} misses"
        )
        sections.append("")

    sections.append(_footer())
    return "\n".join(sections)


def render_candidate_summary(candidates: list[Candidate]) -> str:
    """Plain summary used when the reasoning backend is unavailable."""
    if not candidates:
        return NO_AFFECTED_FILES_TEXT
    lines = [
        "The reasoning backend was unavailable, so these candidates were not verified. "
        "Review them manually:",
        "",
    ]
    for c in candidates:
        lines.append(f"- `{c.path}`: {c.rationale}")
    return "\n".join(lines)


def _render_changed_files(changed_files: list[ChangedFile]) -> list[str]:
    lines: list[str] = []
    for status, (marker, label) in _STATUS_LABELS.items():
        group = [f for f in changed_files if f.status == status]
        if not group:
            continue
        lines.append(f"**{label} ({len(group)})**")
        for f in group[:MAX_FILES_PER_STATUS]:
            entry = f"- {marker} `{f.path}` (+{f.added_lines}/-{f.removed_lines})"
            if f.previous_path:
                entry += f", was `{f.previous_path}`"
            lines.append(entry)
        if len(group) > MAX_FILES_PER_STATUS:
            lines.append(f"- ... and {len(group) - MAX_FILES_PER_STATUS} more")
        lines.append("")
    if lines and not lines[-1]:
        lines.pop()
    return lines


def render_file_tree(files: list[str]) -> list[str]:
    """Render a list of file paths as an ASCII tree."""
    if not files:
        return []

    tree: dict = {}
    for fp in sorted(files):
        node = tree
        for part in fp.split("/"):
            node = node.setdefault(part, {})

    lines: list[str] = []
    _render_tree_recursive(tree, "", lines, is_root=True)
    return lines


def _render_tree_recursive(
    node: dict, prefix: str, lines: list[str], is_root: bool = False
) -> None:
    items = list(node.items())
    for i, (name, children) in enumerate(items):
        is_last_item = i == len(items) - 1
        if is_root:
            connector = ""
            next_prefix = ""
        else:
            connector = "`-- " if is_last_item else "|-- "
            next_prefix = prefix + ("    " if is_last_item else "|   ")

        if children:
            lines.append(f"{prefix}{connector}{name}/")
            _render_tree_recursive(children, next_prefix, lines)
        else:
            lines.append(f"{prefix}{connector}{name}")


def _footer() -> str:
    return "---\n*Generated by ChangeScope, semantic change-impact analysis*"
