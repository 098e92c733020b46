"""
Read and rewrite Kodi-style `.nfo` metadata files.

Only the `<ratings>` container is touched. The rest of the document keeps its
own indentation, and comments inside and around the root element survive the
rewrite.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from pathlib import Path

from nfo_ratings.models.ratings import RatingRecord

logger = logging.getLogger(__name__)

IMDB_SOURCE = "imdb"
RATING_SCALE_MAX = 10

# Matches what Kodi writes when it exports a library.
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'

_INDENT = "  "

_ENCODING_RE = re.compile(rb"""^(?:\xef\xbb\xbf)?\s*<\?xml[^>]*?encoding=["']([A-Za-z0-9._-]+)["']""")
_MISC_TOKEN_RE = re.compile(
    r"\s+|<\?.*?\?>|<!--(.*?)-->|<!DOCTYPE[^\[>]*(?:\[.*?\])?\s*>",
    re.DOTALL,
)


class NfoParseError(ValueError):
    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class NfoTree(ET.ElementTree):
    """ElementTree that also remembers the comments before and after the root element."""

    def __init__(
        self,
        element: ET.Element | None = None,
        *,
        leading_comments: Iterable[str] = (),
        trailing_comments: Iterable[str] = (),
    ) -> None:
        super().__init__(element)
        self.leading_comments = list(leading_comments)
        self.trailing_comments = list(trailing_comments)


def _misc_comments(text: str) -> list[str]:
    comments: list[str] = []
    pos = 0
    while True:
        match = _MISC_TOKEN_RE.match(text, pos)
        if match is None:
            return comments
        if match.group(1) is not None:
            comments.append(match.group(1))
        pos = match.end()


def _outer_comments(data: bytes, root_tag: str) -> tuple[list[str], list[str]]:
    match = _ENCODING_RE.match(data)
    encoding = match.group(1).decode("ascii") if match else "utf-8"
    try:
        text = data.decode(encoding, errors="replace")
    except LookupError:
        text = data.decode("utf-8", errors="replace")
    text = text.lstrip("\ufeff")

    leading = _misc_comments(text)

    trailing: list[str] = []
    end = text.rfind(f"</{root_tag}")
    if end != -1 and not root_tag.startswith("{"):
        close = text.find(">", end)
        if close != -1:
            trailing = _misc_comments(text[close + 1 :])
    return leading, trailing


def load_nfo(path: str | os.PathLike[str]) -> NfoTree:
    path = Path(path)
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
    try:
        data = path.read_bytes()
        root = ET.fromstring(data, parser=parser)
    except ET.ParseError as exc:
        raise NfoParseError(f"Malformed XML in {path}: {exc}", path=path) from exc
    except OSError as exc:
        raise NfoParseError(f"Unable to read {path}: {exc}", path=path) from exc
    leading, trailing = _outer_comments(data, root.tag)
    return NfoTree(root, leading_comments=leading, trailing_comments=trailing)


def _is_imdb(value: str | None) -> bool:
    return (value or "").strip().lower() == IMDB_SOURCE


def _text(element: ET.Element | None) -> str:
    if element is None or element.text is None:
        return ""
    return element.text.strip()


def find_imdb_id(root: ET.Element) -> str | None:
    """Return the raw IMDb identifier text, or None when the document has none."""
    for node in root.iter("uniqueid"):
        if _is_imdb(node.get("type")):
            value = _text(node)
            if value:
                return value
    # Older scrapers wrote the id into dedicated elements instead of uniqueid.
    for tag in ("imdbid", "imdb_id"):
        for node in root.iter(tag):
            value = _text(node)
            if value:
                return value
    for node in root.iter("id"):
        value = _text(node)
        if value.startswith("tt"):
            return value
    return None


def _imdb_ratings(ratings: ET.Element) -> list[ET.Element]:
    return [node for node in ratings.findall("rating") if _is_imdb(node.get("name"))]


def has_complete_imdb_rating(root: ET.Element) -> bool:
    ratings = root.find("ratings")
    if ratings is None:
        return False
    for rating in _imdb_ratings(ratings):
        if _text(rating.find("value")) and _text(rating.find("votes")):
            return True
    return False


def build_imdb_rating_element(rating: RatingRecord) -> ET.Element:
    element = ET.Element(
        "rating",
        {"name": IMDB_SOURCE, "default": "true", "max": str(RATING_SCALE_MAX)},
    )
    ET.SubElement(element, "value").text = rating.rating_value
    ET.SubElement(element, "votes").text = str(rating.vote_count)
    return element


def _child_indent(root: ET.Element) -> str | None:
    """Indentation used for the root's children, or None when the document is not laid out line by line."""
    text = root.text
    if not text or text.strip() or "\n" not in text:
        return None
    return text.rsplit("\n", 1)[1] or None


def _layout_ratings(root: ET.Element, ratings: ET.Element, *, created: bool) -> None:
    indent = _child_indent(root)
    if indent is None:
        ET.indent(root, space=_INDENT)
        return

    if created:
        children = list(root)
        previous = children[-2] if len(children) > 1 else None
        if previous is None:
            ratings.tail = "\n"
        elif not previous.tail or not previous.tail.strip():
            ratings.tail = previous.tail or "\n"
            previous.tail = "\n" + indent
    ET.indent(ratings, space=indent, level=1)


def merge_imdb_rating(root: ET.Element, rating: RatingRecord) -> ET.Element:
    """
    Replace (or insert) the IMDb entry under `<ratings>` in place.

    Any existing IMDb entries are dropped entirely rather than patched, so the
    document ends with exactly one. Only the `<ratings>` subtree is
    re-indented, using the indentation the document already uses; a document
    without line-by-line layout is indented with two spaces throughout.
    Returns the new `<rating>` element.
    """
    ratings = root.find("ratings")
    created = ratings is None
    if ratings is None:
        ratings = ET.SubElement(root, "ratings")

    for existing in _imdb_ratings(ratings):
        ratings.remove(existing)

    element = build_imdb_rating_element(rating)
    ratings.append(element)
    _layout_ratings(root, ratings, created=created)
    return element


def serialize_nfo(tree: ET.ElementTree) -> bytes:
    leading: list[str] = []
    trailing: list[str] = []
    if isinstance(tree, NfoTree):
        leading, trailing = tree.leading_comments, tree.trailing_comments

    lines = [XML_DECLARATION]
    lines.extend(f"<!--{comment}-->" for comment in leading)
    lines.append(ET.tostring(tree.getroot(), encoding="unicode").rstrip())
    lines.extend(f"<!--{comment}-->" for comment in trailing)
    text = "\n".join(lines) + "\n"
    if os.linesep != "\n":
        text = text.replace("\n", os.linesep)
    return text.encode("utf-8")


def write_nfo(tree: ET.ElementTree, path: str | os.PathLike[str]) -> bool:
    """
    Serialize `tree` to `path`.

    The document goes to a temporary file next to the real file first and is
    then swapped in with `os.replace`, so a failed write leaves the original
    file untouched. A symlinked path is written through to its target.
    Returns False (after logging) on any write failure.
    """
    path = Path(path)
    try:
        payload = serialize_nfo(tree)
    except (TypeError, ValueError) as exc:
        logger.error(f"Failed to serialize {path}: {exc}")
        return False

    tmp_name: str | None = None
    try:
        target = path.resolve()
        with tempfile.NamedTemporaryFile(
            "wb",
            dir=target.parent,
            prefix=f".{target.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            tmp_name = handle.name
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        if target.exists():
            shutil.copymode(target, tmp_name)
        os.replace(tmp_name, target)
        tmp_name = None
    except OSError as exc:
        logger.error(f"Failed to write {path}: {exc}")
        return False
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.debug(f"Could not remove temporary file {tmp_name}")
    return True


def merge_rating_into_nfo(tree: ET.ElementTree, path: str | os.PathLike[str], rating: RatingRecord) -> bool:
    merge_imdb_rating(tree.getroot(), rating)
    return write_nfo(tree, path)
