"""HTML document-tree helpers.

Thin layer over BeautifulSoup used by the table decoders and the page parser.
Everything that turns a node into text goes through ``gather_text`` so the
whitespace policy is the same for every cell:

- ``gather_text``      — descendant (or own) text, whitespace-normalized.
- ``paragraph_values`` — one normalized value per ``<p>`` inside a node.
- ``get_attr``         — attribute as a plain string ("" when absent).
- ``render_to_string`` — markup of a node, for diagnostics.

Byte input is handed to BeautifulSoup as-is so its encoding detection picks
the charset of saved pages.
"""
from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag
from bs4.element import NavigableString, PageElement

# ---------------------------------------------------------------------------
# Whitespace policy
# ---------------------------------------------------------------------------

# Two or more whitespace characters collapse to one space.  A single newline
# or tab inside a word run is left alone, matching how the reference pages
# render single line breaks.
_SPACE_RUN_RE = re.compile(r"\s{2,}")


def collapse_whitespace(text: str) -> str:
    """Trim *text* and collapse runs of 2+ whitespace characters to one space."""
    return _SPACE_RUN_RE.sub(" ", text.strip())


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_html(raw_html: str | bytes) -> BeautifulSoup:
    """Parse a full page (or fragment) with the stdlib-backed html.parser."""
    return BeautifulSoup(raw_html, "html.parser")


# ---------------------------------------------------------------------------
# Node accessors
# ---------------------------------------------------------------------------


def gather_text(node: PageElement | None, *, recursive: bool = True) -> str:
    """Concatenate the text nodes under *node* and normalize whitespace.

    Args:
        node: Element to read.  ``None`` reads as "".
        recursive: If True (default), include text of all descendants.
            If False, only the node's direct text children are used.

    Returns:
        Whitespace-normalized text.
    """
    if node is None:
        return ""
    if isinstance(node, NavigableString):
        return collapse_whitespace(str(node))

    parts: list[str] = []
    _collect_text(node, parts, recursive=recursive)
    return collapse_whitespace("".join(parts))


def _collect_text(node: PageElement, parts: list[str], *, recursive: bool) -> None:
    for child in getattr(node, "children", ()):
        if isinstance(child, NavigableString):
            # Comments, CDATA and doctype are NavigableString subclasses too.
            if type(child) is NavigableString:
                parts.append(str(child))
        elif recursive:
            _collect_text(child, parts, recursive=True)


def get_attr(node: Tag | None, name: str) -> str:
    """Return attribute *name* of *node* as a string, "" when absent.

    Multi-valued attributes (``class``) are joined with a single space.
    """
    if node is None:
        return ""
    value = node.get(name)
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(value)
    return str(value)


def paragraph_values(cell: Tag) -> list[str]:
    """Return one normalized value per ``<p>`` descendant of *cell*.

    Condition keys and dependent actions are listed one per paragraph; a
    cell with no paragraphs yields an empty list even if it has bare text.
    """
    return [gather_text(p) for p in cell.select("p")]


def row_cells(row: Tag) -> list[Tag]:
    """Return the data cells (``<td>``) of a table row, in order."""
    return row.select("td")


def table_rows(table: Tag) -> list[Tag]:
    """Return every ``<tr>`` of *table* in document order, header included."""
    return table.select("tr")


def render_to_string(node: PageElement | None) -> str:
    """Render *node* back to markup for error messages ("" for None)."""
    if node is None:
        return ""
    return str(node)

