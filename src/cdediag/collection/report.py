"""Collection report assembly, rendering and parsing."""

import re
from collections.abc import Iterator

from cdediag.core.models import Section, SectionKind

BEGIN_MARKER = "==> BEGIN [{kind}] {label}"
END_MARKER = "<== END {label}"

_BEGIN_RE = re.compile(r"^==> BEGIN \[(?P<kind>[a-z]+)\] (?P<label>.+)$")


class CollectionReport:
    """Ordered sequence of labeled sections produced by one status run.

    Rendered text is a human readable triage document, and ``parse``
    recovers the same sections in the same order.
    """

    def __init__(self, sections: list[Section] | None = None):
        self.sections: list[Section] = list(sections or [])

    def add(self, label: str, kind: SectionKind, body: str = "") -> Section:
        """Append a section and return it."""
        section = Section(label=label, kind=kind, body=body.rstrip("\n"))
        self.sections.append(section)
        return section

    def __iter__(self) -> Iterator[Section]:
        return iter(self.sections)

    def __len__(self) -> int:
        return len(self.sections)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CollectionReport):
            return NotImplemented
        return self.sections == other.sections

    @property
    def labels(self) -> list[str]:
        return [s.label for s in self.sections]

    def by_kind(self, kind: SectionKind) -> list[Section]:
        return [s for s in self.sections if s.kind == kind]

    def render(self) -> str:
        """Render all sections as text."""
        chunks = []
        for section in self.sections:
            lines = [BEGIN_MARKER.format(kind=section.kind.value, label=section.label)]
            if section.body:
                lines.append(section.body)
            lines.append(END_MARKER.format(label=section.label))
            chunks.append("\n".join(lines))
        return "\n\n".join(chunks) + ("\n" if chunks else "")

    @classmethod
    def parse(cls, text: str) -> "CollectionReport":
        """Parse rendered report text back into sections.

        Raises:
            ValueError: If a section is not terminated
        """
        report = cls()
        lines = text.splitlines()
        i = 0
        while i < len(lines):
            match = _BEGIN_RE.match(lines[i])
            if not match:
                i += 1
                continue

            label = match.group("label")
            kind = SectionKind(match.group("kind"))
            end = END_MARKER.format(label=label)
            body: list[str] = []
            i += 1
            while i < len(lines) and lines[i] != end:
                body.append(lines[i])
                i += 1
            if i >= len(lines):
                raise ValueError(f"Unterminated section: {label}")

            report.sections.append(Section(label=label, kind=kind, body="\n".join(body)))
            i += 1
        return report
