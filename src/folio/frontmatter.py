"""YAML front-matter parser for Markdown sources.

A source file must start with a line that is exactly ``---``; the block ends at
the next line that is exactly ``---``. Everything after the closing delimiter is
the body (one separating blank line is dropped, matching what ``render`` writes).

Usage:
    meta, body = parse(path.read_bytes())
    path.write_text(render(meta, body), encoding="utf-8")

YAML is read with yaml.safe_load() only.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any

import yaml

from folio.errors import FrontMatterParseError, MissingFrontMatterError
from folio.models import Metadata

_DELIMITER = "---"
_REQUIRED_TEXT_FIELDS = ("title", "author", "description")


def is_readme(path: Path | str) -> bool:
    """True for ``README.md`` and friends, which are never catalog entries."""
    return Path(path).stem.lower() == "readme"


def parse(raw: bytes, source: str = "<memory>") -> tuple[Metadata, str]:
    """Split *raw* into (metadata, body).

    Raises:
        MissingFrontMatterError: no opening or closing ``---`` line.
        FrontMatterParseError: undecodable bytes, malformed YAML, or a block
            that does not match the metadata shape.
    """
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise FrontMatterParseError(f"{source}: not valid UTF-8 ({exc})") from exc

    block, body = split(text, source)

    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        raise FrontMatterParseError(f"{source}: malformed YAML front matter: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontMatterParseError(
            f"{source}: front matter must be a mapping, got {type(data).__name__}"
        )
    return metadata_from_dict(data, source), body


def split(text: str, source: str = "<memory>") -> tuple[str, str]:
    """Return the raw YAML block and the body of *text*."""
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != _DELIMITER:
        raise MissingFrontMatterError(f"{source}: missing front matter block")

    for idx in range(1, len(lines)):
        if lines[idx].rstrip() == _DELIMITER:
            block = "".join(lines[1:idx])
            body = "".join(lines[idx + 1 :])
            if body.startswith("\r\n"):
                body = body[2:]
            elif body.startswith("\n"):
                body = body[1:]
            return block, body

    raise MissingFrontMatterError(f"{source}: front matter block is not closed")


def render(metadata: Metadata, body: str) -> str:
    """Serialize *metadata* and *body* back into a source file."""
    front = yaml.safe_dump(
        metadata_to_dict(metadata),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{_DELIMITER}\n{front}{_DELIMITER}\n\n{body}"


# ---------------------------------------------------------------------------
# dict <-> Metadata
# ---------------------------------------------------------------------------


def metadata_to_dict(metadata: Metadata) -> dict[str, Any]:
    data: dict[str, Any] = {
        "title": metadata.title,
        "author": metadata.author,
        "date": metadata.date.isoformat(),
        "description": metadata.description,
        "tags": list(metadata.tags),
        "draft": metadata.draft,
    }
    if metadata.category is not None:
        data["category"] = metadata.category
    if metadata.last_updated is not None:
        data["last_updated"] = metadata.last_updated
    return data


def metadata_from_dict(data: dict[str, Any], source: str = "<memory>") -> Metadata:
    """Validate a raw front-matter mapping and build *Metadata*."""
    for name in _REQUIRED_TEXT_FIELDS:
        if name not in data or data[name] is None:
            raise FrontMatterParseError(f"{source}: missing required field '{name}'")
        if not isinstance(data[name], str):
            raise FrontMatterParseError(f"{source}: field '{name}' must be a string")
    if "date" not in data or data["date"] is None:
        raise FrontMatterParseError(f"{source}: missing required field 'date'")

    tags = data.get("tags") or []
    if not isinstance(tags, list):
        raise FrontMatterParseError(f"{source}: field 'tags' must be a list")

    draft = data.get("draft", False)
    if not isinstance(draft, bool):
        raise FrontMatterParseError(f"{source}: field 'draft' must be true or false")

    category = data.get("category")
    if category is not None and not isinstance(category, str):
        raise FrontMatterParseError(f"{source}: field 'category' must be a string")

    last_updated = data.get("last_updated")
    if isinstance(last_updated, (datetime, date)):
        last_updated = last_updated.isoformat()
    elif last_updated is not None and not isinstance(last_updated, str):
        raise FrontMatterParseError(f"{source}: field 'last_updated' must be a string")

    return Metadata(
        title=data["title"],
        author=data["author"],
        date=_to_utc(data["date"], source),
        description=data["description"],
        tags=[str(t) for t in tags],
        draft=draft,
        category=category or None,
        last_updated=last_updated,
    )


def _to_utc(value: Any, source: str) -> datetime:
    """Normalise a YAML date value to an aware UTC datetime.

    Naive datetimes and bare dates are taken to be UTC.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise FrontMatterParseError(f"{source}: invalid date '{value}'") from exc
    else:
        raise FrontMatterParseError(f"{source}: field 'date' must be a timestamp")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
