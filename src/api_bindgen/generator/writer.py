"""Append-only text sink used by the source generators."""

from contextlib import contextmanager

INDENT = "    "


class CodeWriter:
    """Collects generated lines; text is only ever appended."""

    def __init__(self):
        self._lines: list[str] = []
        self._level = 0

    def p(self, *parts: str) -> None:
        """Append one line built from `parts` at the current indentation."""
        text = "".join(parts)
        self._lines.append(INDENT * self._level + text if text else "")

    def comment(self, text: str) -> None:
        """Append `text` as one '#' comment line per source line."""
        for line in text.strip().splitlines():
            line = line.rstrip()
            self.p(f"# {line}" if line else "#")

    @contextmanager
    def indented(self):
        self._level += 1
        try:
            yield self
        finally:
            self._level -= 1

    def getvalue(self) -> str:
        return "\n".join(self._lines) + "\n"
