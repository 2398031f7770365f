"""HTML message formatting shared by meetups and handlers."""
from __future__ import annotations

from html import escape
from typing import Iterable, Optional

from .models import ButtonRows, Member, Rendered


def mention(member: Member) -> str:
    return f'<a href="tg://user?id={member.id}">{escape(member.name)}</a>'


def card(title: str, description: str, fields: Iterable[str] = (), content: Optional[str] = None) -> str:
    """Lay out a message the way the bot presents every notice.

    ``content`` comes first (mentions and the like), then the bold title, the
    description and one line per field. Only ``title`` and ``description`` are
    escaped; callers pass already formatted HTML in ``fields`` and ``content``.
    """
    parts = []
    if content:
        parts.append(content)
    parts.append(f"<b>{escape(title)}</b>")
    parts.append(escape(description))
    body = list(fields)
    if body:
        parts.append("\n".join(body))
    return "\n\n".join(parts)


def notice(title: str, description: str, content: Optional[str] = None, buttons: ButtonRows = ()) -> Rendered:
    return Rendered(text=card(title, description, content=content), buttons=buttons)


def error_text(message: str) -> str:
    return card("Error", message)
