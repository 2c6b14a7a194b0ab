"""Markdown structure extraction: title, heading hierarchy and section paths."""

import re
from pathlib import PurePosixPath

from knowledge_engine.models.document import MarkdownStructure, Section

# ATX heading: 1-6 '#' followed by whitespace and text, anchored per line
HEADING_PATTERN = re.compile(r"^(#{1,6})[ \t]+(\S.*?)[ \t]*$", re.MULTILINE)


def extract_markdown_structure(content: str, filename: str) -> MarkdownStructure:
    """Extract title and section hierarchy from markdown content.

    Each heading opens a section that ends where the next heading starts
    (the last one ends at the end of the document). A section's path holds
    the headings still open above it: a heading at level L closes every
    open heading with level >= L.

    Args:
        content: Markdown text
        filename: Source filename, used for the fallback title

    Returns:
        MarkdownStructure with the first level-1 heading as title

    Example:
        >>> s = extract_markdown_structure("# API Guide\\n## Auth\\n", "api.md")
        >>> s.title, [x.path for x in s.sections]
        ('API Guide', [[], ['API Guide']])
    """
    title: str | None = None
    raw_sections: list[dict] = []
    header_stack: list[tuple[int, str]] = []

    for match in HEADING_PATTERN.finditer(content):
        level = len(match.group(1))
        heading = match.group(2).strip()
        start_pos = match.start()

        if raw_sections:
            raw_sections[-1]["end_pos"] = start_pos

        if level == 1 and title is None:
            title = heading

        while header_stack and header_stack[-1][0] >= level:
            header_stack.pop()

        raw_sections.append(
            {
                "heading": heading,
                "level": level,
                "start_pos": start_pos,
                "end_pos": len(content),
                "path": [h for _, h in header_stack],
            }
        )
        header_stack.append((level, heading))

    return MarkdownStructure(
        title=title if title is not None else title_from_filename(filename),
        sections=[Section(**s) for s in raw_sections],
    )


def title_from_filename(filename: str) -> str:
    """Derive a document title from a path by dropping directories and extension."""
    name = PurePosixPath(filename.replace("\\", "/")).name
    stem = name.rsplit(".", 1)[0] if "." in name.lstrip(".") else name
    return stem or filename


def find_section_at_position(sections: list[Section], position: int) -> Section | None:
    """Find the deepest section containing a character position.

    Args:
        sections: Sections from extract_markdown_structure
        position: Character offset in the document

    Returns:
        The containing section with the highest level, or None
    """
    deepest: Section | None = None
    for section in sections:
        if section.start_pos <= position < section.end_pos:
            if deepest is None or section.level > deepest.level:
                deepest = section
    return deepest


def get_section_path(sections: list[Section], position: int) -> list[str]:
    """Heading path from the document root down to the section at position."""
    section = find_section_at_position(sections, position)
    if section is None:
        return []
    return [*section.path, section.heading]


def build_contextual_prefix(title: str, section_path: list[str]) -> str:
    """Build the markdown prefix prepended to a chunk before embedding.

    >>> build_contextual_prefix("API Guide", ["Auth", "OAuth"])
    '# API Guide\\n## Auth > OAuth\\n\\n'
    """
    if not section_path:
        return f"# {title}\n\n"
    return f"# {title}\n## {' > '.join(section_path)}\n\n"
