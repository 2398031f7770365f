"""Routing of button presses to the callbacks that registered them."""
from __future__ import annotations

import inspect
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Set, Union

from .errors import DispatchMiss
from .models import Button, ButtonStyle, Member

logger = logging.getLogger(__name__)

TOKEN_BYTES = 12  # 16 url-safe characters, well inside Telegram's 64-byte callback_data


@dataclass(frozen=True)
class Interaction:
    """Context of one inbound button press."""
    user: Member
    chat_id: int | None = None


Action = Callable[[Interaction], Union[Awaitable[Any], Any]]


@dataclass(frozen=True)
class _Binding:
    button: Button
    action: Action


class InteractionRegistry:
    """Issues opaque tokens for buttons and dispatches presses to their actions.

    Tokens are unique over the registry's lifetime: removed tokens are never
    handed out again, so a stale button can only ever miss.
    """

    def __init__(self, token_factory: Callable[[], str] | None = None):
        self._bindings: Dict[str, _Binding] = {}
        self._issued: Set[str] = set()
        self._token_factory = token_factory or (lambda: secrets.token_urlsafe(TOKEN_BYTES))

    def _generate_token(self) -> str:
        token = self._token_factory()
        while token in self._issued:
            token = self._token_factory()
        self._issued.add(token)
        return token

    def register(self, label: str, style: ButtonStyle, action: Action) -> Button:
        """Bind ``action`` to a fresh token and return the button carrying it."""
        button = Button(token=self._generate_token(), label=label, style=style)
        self._bindings[button.token] = _Binding(button=button, action=action)
        logger.debug("registered button %s with label %s", button.token, label)
        return button

    def _binding(self, token: str) -> _Binding:
        binding = self._bindings.get(token)
        if binding is None:
            raise DispatchMiss(token)
        return binding

    async def dispatch(self, token: str, interaction: Interaction) -> bool:
        """Invoke the action bound to ``token`` once.

        Returns:
            bool: False when the token is unknown (removed or foreign).
        """
        try:
            binding = self._binding(token)
        except DispatchMiss as exc:
            logger.debug("%s from user %s", exc, interaction.user.id)
            return False
        result = binding.action(interaction)
        if inspect.isawaitable(result):
            await result
        return True

    def remove(self, token: str) -> None:
        if self._bindings.pop(token, None) is not None:
            logger.debug("removed button %s", token)

    def remove_all(self, tokens: Iterable[str]) -> None:
        for token in list(tokens):
            self.remove(token)

    def __contains__(self, token: object) -> bool:
        return token in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)
