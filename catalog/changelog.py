"""Latest-section extraction for extension CHANGELOG.md files."""

from __future__ import annotations

SECTION_PREFIX = "## "


def extract_latest_section(doc: str) -> str:
    """
    Return the first "## " section of a changelog, heading included.

    Lines are collected from the first "## " heading up to (not including)
    the next one; the result is stripped. "" if there is no such heading.
    """
    section = []
    started = False

    for line in doc.split("\n"):
        if line.startswith(SECTION_PREFIX):
            if started:
                break
            started = True
        if started:
            section.append(line)

    return "\n".join(section).strip()
