"""
Document helpers: parsing, normalization, stored dumps and rendering.

A Document is a BeautifulSoup tree. Pages are parsed with the lxml
tag-soup builder; XML fragments (mostly in tests) use the lxml XML builder
so element names keep their case.
"""

import html
from pathlib import Path
from typing import List, Optional, Union

from bs4 import BeautifulSoup
from bs4.element import (
    CData,
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    PreformattedString,
    ProcessingInstruction,
    Tag,
)

from .errors import LoadError, SinkError
from .mode import DEFAULT_MODE, ComparisonMode

DOM_DUMP_SUFFIX = ".dom"

ELEMENT = "element"
TEXT = "#text"
CDATA = "#cdata-section"
COMMENT = "#comment"
DOCUMENT = "#document"

VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)

RAW_TEXT_ELEMENTS = frozenset({"script", "style"})

PathLike = Union[str, Path]


# ─────────────────────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────────────────────

def parse_document(markup: str, markup_type: str = "html") -> BeautifulSoup:
    """
    Parse markup into a Document.

    markup_type is "html" (tag soup, lxml HTML builder) or "xml".
    Multi-valued attributes such as ``class`` stay plain strings so every
    attribute compares as a single value.
    """
    if markup_type not in ("html", "xml"):
        raise ValueError(f"unknown markup type: {markup_type!r}")
    features = "xml" if markup_type == "xml" else "lxml"
    return BeautifulSoup(markup, features, multi_valued_attributes=None)


# ─────────────────────────────────────────────────────────────
# Node classification
# ─────────────────────────────────────────────────────────────

def _is_plain_text(node) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def node_type(node, mode: ComparisonMode = DEFAULT_MODE) -> Optional[str]:
    """
    Return the comparable type of a child node, or None when the node never
    takes part in a comparison under ``mode``.
    """
    if isinstance(node, Tag):
        return ELEMENT
    if isinstance(node, Comment):
        return None if mode.ignore_comments else COMMENT
    if isinstance(node, CData):
        return TEXT if mode.ignore_text_cdata else CDATA
    if isinstance(node, (Doctype, Declaration, ProcessingInstruction)):
        return None
    if isinstance(node, NavigableString):
        if mode.ignore_whitespace and not node.strip():
            return None
        return TEXT
    return None


def node_name(node, mode: ComparisonMode = DEFAULT_MODE) -> Optional[str]:
    """Tag name for elements, ``#text`` / ``#comment`` / ... for the rest."""
    if isinstance(node, BeautifulSoup):
        return DOCUMENT
    kind = node_type(node, mode)
    if kind == ELEMENT:
        return node.name
    return kind


def parent_name(node) -> Optional[str]:
    parent = getattr(node, "parent", None)
    if parent is None:
        return None
    if isinstance(parent, BeautifulSoup):
        return DOCUMENT
    return parent.name


def child_nodes(node, mode: ComparisonMode = DEFAULT_MODE) -> List:
    """Children of ``node`` that take part in a comparison."""
    return [c for c in getattr(node, "contents", []) if node_type(c, mode) is not None]


# ─────────────────────────────────────────────────────────────
# Normalization
# ─────────────────────────────────────────────────────────────

def _merge_text_runs(tag: Tag):
    run = []
    for child in list(tag.contents) + [None]:
        if child is not None and _is_plain_text(child):
            run.append(child)
            continue
        if len(run) > 1:
            merged = type(run[0])("".join(run))
            run[0].replace_with(merged)
            for extra in run[1:]:
                extra.extract()
        run = []


def normalize(document: BeautifulSoup, mode: ComparisonMode = DEFAULT_MODE) -> BeautifulSoup:
    """
    Normalize a Document in place and return it.

    Removes comments and processing instructions (ignore_comments), turns
    CDATA into text (ignore_text_cdata), merges adjacent text and drops
    whitespace-only text (ignore_whitespace). Running it twice changes
    nothing.
    """
    for node in list(document.descendants):
        if mode.ignore_comments and isinstance(node, (Comment, ProcessingInstruction)):
            node.extract()
        elif mode.ignore_text_cdata and isinstance(node, CData):
            node.replace_with(NavigableString(str(node)))

    for tag in [document] + document.find_all(True):
        _merge_text_runs(tag)
        if mode.ignore_whitespace:
            for child in list(tag.contents):
                if _is_plain_text(child) and not child.strip():
                    child.extract()

    return document


# ─────────────────────────────────────────────────────────────
# Stored dumps
# ─────────────────────────────────────────────────────────────

def load_document(path: PathLike) -> BeautifulSoup:
    """
    Load a stored dump. Dumps starting with an XML prolog are parsed as XML,
    everything else as HTML.
    """
    path = Path(path)
    try:
        markup = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LoadError(f"cannot load document {path}: {e}") from e

    markup_type = "xml" if markup.lstrip().startswith("<?xml") else "html"
    return parse_document(markup, markup_type)


def store_document(document: BeautifulSoup, path: PathLike) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(document.decode(), encoding="utf-8")
    except OSError as e:
        raise SinkError(f"cannot store document {path}: {e}") from e
    return path


# ─────────────────────────────────────────────────────────────
# Rendering
# ─────────────────────────────────────────────────────────────

def _render(node, out: List[str], raw: bool = False):
    if isinstance(node, Tag):
        attrs = "".join(
            f' {name}="{html.escape(str(value), quote=True)}"'
            for name, value in node.attrs.items()
        )
        out.append(f"<{node.name}{attrs}>")
        if node.name.lower() in VOID_ELEMENTS and not node.contents:
            return
        inner_raw = node.name.lower() in RAW_TEXT_ELEMENTS
        for child in node.contents:
            _render(child, out, inner_raw)
        out.append(f"</{node.name}>")
    elif isinstance(node, Comment):
        out.append(f"<!--{node}-->")
    elif isinstance(node, Doctype):
        out.append(f"<!DOCTYPE {node}>")
    elif isinstance(node, (Declaration, ProcessingInstruction)):
        return
    elif isinstance(node, NavigableString):
        out.append(str(node) if raw else html.escape(str(node), quote=False))


def render_document(document: BeautifulSoup) -> str:
    """
    Print a Document as HTML. Non-void elements always get an explicit end
    tag, even when empty.
    """
    out: List[str] = []
    for child in document.contents:
        _render(child, out)
    return "".join(out) + "\n"
