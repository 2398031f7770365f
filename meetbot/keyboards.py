"""Telegram inline keyboards built from registered interaction buttons.

Telegram buttons have no colour, so the button style is rendered as an emoji
prefix on the label. The interaction token travels as ``callback_data``.
"""
from __future__ import annotations

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from .models import Button, ButtonRows, ButtonStyle

STYLE_PREFIX = {
    ButtonStyle.SUCCESS: "✅",
    ButtonStyle.SECONDARY: "🤔",
    ButtonStyle.DANGER: "❌",
}


class InteractionKeyboard:
    """Factory for inline keyboards carrying interaction tokens."""

    @staticmethod
    def button(button: Button) -> InlineKeyboardButton:
        prefix = STYLE_PREFIX.get(button.style)
        text = f"{prefix} {button.label}" if prefix else button.label
        return InlineKeyboardButton(text=text, callback_data=button.token)

    @staticmethod
    def build(rows: ButtonRows) -> InlineKeyboardMarkup | None:
        """Build an inline keyboard, one keyboard row per button row.

        Returns:
            InlineKeyboardMarkup, or None when there is no button at all so
            that an edit strips any keyboard previously attached.
        """
        keyboard = [
            [InteractionKeyboard.button(b) for b in row]
            for row in rows
            if row
        ]
        if not keyboard:
            return None
        return InlineKeyboardMarkup(keyboard)
