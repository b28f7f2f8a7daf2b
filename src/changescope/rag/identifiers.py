"""Heuristic identifier extraction from changed source text.

This is a regex sieve, not a parser. It approximates declared function and
type names plus imported/exported names across several surface syntaxes
(JavaScript/TypeScript, Python, Go, Rust, Java-like languages). Any object
with an ``extract(text) -> list[str]`` method can replace it.
"""

from __future__ import annotations

import re
from typing import Protocol

MAX_IDENTIFIERS = 20
MIN_IDENTIFIER_LENGTH = 3

FUNCTION_PATTERNS = [
    re.compile(r"\b(?:function|const|let|var|async)\s+(\w+)"),
    re.compile(r"(\w+)\s*[=:]\s*(?:async\s*)?\([^)]*\)\s*=>"),  # arrow functions
    re.compile(r"(?:export\s+)?(?:async\s+)?function\s*\*?\s*(\w+)"),
    re.compile(r"(?:public|private|protected)?\s*(?:async\s+)?(\w+)\s*\([^)]*\)\s*[{:]"),  # methods
    re.compile(r"\bdef\s+(\w+)"),  # Python
    re.compile(r"\bfunc\s+(?:\([^)]*\)\s*)?(\w+)"),  # Go, with optional receiver
    re.compile(r"\bfn\s+(\w+)"),  # Rust
]

TYPE_PATTERNS = [
    re.compile(r"\b(?:class|interface|type|enum)\s+(\w+)"),
    re.compile(r"\b(?:struct|trait)\s+(\w+)"),
]

IMPORT_PATTERNS = [
    re.compile(r"\b(?:import|export)\s+.*?\{\s*([^}]+?)\s*\}"),
    re.compile(r"\b(?:import|export)\s+(\w+)"),
    re.compile(r"^[+\-\s]*from\s+[\w.]+\s+import\s+\(?([\w, ]+)", re.MULTILINE),
]

KEYWORDS = frozenset({
    "abstract", "async", "await", "break", "case", "catch", "class", "const",
    "constructor", "continue", "def", "default", "elif", "else", "enum",
    "export", "extends", "false", "final", "finally", "for", "from", "func",
    "function", "implements", "import", "interface", "let", "new", "none",
    "null", "private", "protected", "public", "return", "self", "static",
    "struct", "super", "switch", "this", "throw", "trait", "true", "try",
    "type", "typeof", "undefined", "var", "void", "while", "with", "yield",
})

_NAME = re.compile(r"\w+")


class Extractor(Protocol):
    def extract(self, text: str) -> list[str]: ...


class IdentifierExtractor:
    """Pull probable function, type and import names out of source text."""

    def __init__(
        self,
        max_identifiers: int = MAX_IDENTIFIERS,
        min_length: int = MIN_IDENTIFIER_LENGTH,
    ) -> None:
        self.max_identifiers = max_identifiers
        self.min_length = min_length
        self.patterns = [*FUNCTION_PATTERNS, *TYPE_PATTERNS, *IMPORT_PATTERNS]

    def extract(self, text: str) -> list[str]:
        """Return identifiers in discovery order, deduplicated and capped."""
        found: list[str] = []
        seen: set[str] = set()
        if not text:
            return found

        for pattern in self.patterns:
            for match in pattern.finditer(text):
                for name in _names_from_capture(match.group(1)):
                    if name in seen or not self._keep(name):
                        continue
                    seen.add(name)
                    found.append(name)
                    if len(found) >= self.max_identifiers:
                        return found
        return found

    def _keep(self, name: str) -> bool:
        if len(name) < self.min_length:
            return False
        if name.lower() in KEYWORDS:
            return False
        return not name.isdigit()


def _names_from_capture(capture: str | None) -> list[str]:
    """Split an import list like ``a, b as c, type D`` into ``[a, b, D]``."""
    if not capture:
        return []
    if "," not in capture and " " not in capture.strip():
        return [capture.strip()]

    names = []
    for part in capture.split(","):
        words = part.split()
        if not words:
            continue
        if words[0] == "type" and len(words) > 1:
            words = words[1:]
        match = _NAME.match(words[0])
        if match:
            names.append(match.group(0))
    return names
