"""Content extraction — markdown vault or JSON corpus -> :class:`Article` records."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from vault_search.search.types import Article

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = (".md", ".mdx", ".markdown")

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_H1_RE = re.compile(r"^#[ \t]+(.+?)[ \t#]*$", re.MULTILINE)
_FENCE_RE = re.compile(r"^(```|~~~)[^\n]*$", re.MULTILINE)
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_HTML_TAG_RE = re.compile(r"<[^>\n]+>")
_HEADING_MARK_RE = re.compile(r"^#{1,6}[ \t]+", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a markdown document into ``(frontmatter, body)``.

    Documents without a leading ``---`` block get an empty mapping.  A
    block that is not valid YAML mapping is treated as absent.
    """
    match = _FRONTMATTER_RE.match(text)
    if match is None:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        logger.warning("Ignoring malformed frontmatter: %s", exc)
        return {}, text[match.end() :]
    if not isinstance(data, dict):
        return {}, text[match.end() :]
    return data, text[match.end() :]


def clean_markdown(body: str) -> str:
    """Reduce markdown to the plain text worth embedding."""
    text = _FENCE_RE.sub("", body)
    text = _IMAGE_RE.sub(r"\1", text)
    text = _LINK_RE.sub(r"\1", text)
    text = _HTML_TAG_RE.sub("", text)
    text = _HEADING_MARK_RE.sub("", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def _coerce_tags(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        return tuple(t.strip() for t in raw.split(",") if t.strip())
    if isinstance(raw, (list, tuple)):
        return tuple(str(t).strip() for t in raw if str(t).strip())
    return (str(raw),)


def parse_article(path: Path, root: Path) -> Article | None:
    """Build an :class:`Article` from one markdown file under *root*.

    Returns ``None`` for drafts (``draft: true`` in the frontmatter).
    """
    text = path.read_text(encoding="utf-8")
    meta, body = split_frontmatter(text)
    if meta.get("draft") is True:
        return None

    relative = path.relative_to(root).with_suffix("")
    slug = str(meta.get("slug") or relative.as_posix())

    folder = meta.get("folder") or meta.get("category")
    if not folder:
        folder = relative.parts[0] if len(relative.parts) > 1 else ""

    title = meta.get("title")
    if not title:
        heading = _H1_RE.search(body)
        title = heading.group(1).strip() if heading else path.stem.replace("-", " ")

    return Article(
        slug=slug,
        title=str(title),
        folder=str(folder),
        tags=_coerce_tags(meta.get("tags")),
        body=clean_markdown(body),
    )


def iter_markdown(content_dir: str | Path) -> Iterator[Article]:
    """Yield every article under *content_dir*, sorted by path."""
    root = Path(content_dir)
    if not root.is_dir():
        msg = f"Content directory not found: {root}"
        raise FileNotFoundError(msg)
    paths = sorted(p for p in root.rglob("*") if p.suffix in MARKDOWN_SUFFIXES and p.is_file())
    for path in paths:
        try:
            article = parse_article(path, root)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read %s: %s", path, exc)
            continue
        if article is not None:
            yield article


def load_corpus_json(path: str | Path) -> list[Article]:
    """Load articles from a JSON list of ``{slug, title, folder, tags, body}`` objects."""
    with Path(path).open(encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, list):
        msg = f"Corpus file {path} must contain a JSON list"
        raise ValueError(msg)
    articles: list[Article] = []
    for item in raw:
        if not isinstance(item, dict) or "slug" not in item:
            msg = f"Corpus entry without a slug in {path}: {item!r}"
            raise ValueError(msg)
        articles.append(
            Article(
                slug=str(item["slug"]),
                title=str(item.get("title") or item["slug"]),
                folder=str(item.get("folder") or ""),
                tags=_coerce_tags(item.get("tags")),
                body=str(item.get("body") or item.get("content") or ""),
            )
        )
    return articles
