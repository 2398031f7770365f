import logging

import pytest

from meetbot.errors import DispatchMiss
from meetbot.interactions import Interaction, InteractionRegistry
from meetbot.models import ButtonStyle
from tests.conftest import ALICE, BOB


def _tokens(*values):
    it = iter(values)
    return lambda: next(it)


def test_registered_tokens_are_distinct():
    registry = InteractionRegistry()
    buttons = [registry.register("Join", ButtonStyle.SUCCESS, lambda i: None) for _ in range(50)]
    assert len({b.token for b in buttons}) == 50
    assert len(registry) == 50


def test_collision_is_regenerated():
    registry = InteractionRegistry(token_factory=_tokens("a", "a", "b"))
    first = registry.register("Join", ButtonStyle.SUCCESS, lambda i: None)
    second = registry.register("Maybe", ButtonStyle.SECONDARY, lambda i: None)
    assert (first.token, second.token) == ("a", "b")


def test_removed_token_is_never_reissued():
    registry = InteractionRegistry(token_factory=_tokens("a", "a", "b"))
    first = registry.register("Join", ButtonStyle.SUCCESS, lambda i: None)
    registry.remove(first.token)
    second = registry.register("Join", ButtonStyle.SUCCESS, lambda i: None)
    assert second.token == "b"
    assert "a" not in registry


@pytest.mark.anyio("asyncio")
async def test_unknown_token_is_logged_as_a_miss(caplog):
    registry = InteractionRegistry()
    with caplog.at_level(logging.DEBUG, logger="meetbot.interactions"):
        assert await registry.dispatch("nope", Interaction(user=BOB)) is False
    assert str(DispatchMiss("nope")) in caplog.text


@pytest.mark.anyio("asyncio")
async def test_dispatch_runs_sync_and_async_actions():
    registry = InteractionRegistry()
    pressed = []

    async def on_join(interaction):
        pressed.append(("join", interaction.user.id))

    join = registry.register("Join", ButtonStyle.SUCCESS, on_join)
    maybe = registry.register("Maybe", ButtonStyle.SECONDARY, lambda i: pressed.append(("maybe", i.user.id)))

    assert await registry.dispatch(join.token, Interaction(user=ALICE))
    assert await registry.dispatch(maybe.token, Interaction(user=BOB))
    assert pressed == [("join", ALICE.id), ("maybe", BOB.id)]


@pytest.mark.anyio("asyncio")
async def test_dispatch_of_removed_token_is_a_miss():
    registry = InteractionRegistry()
    pressed = []
    button = registry.register("Join", ButtonStyle.SUCCESS, lambda i: pressed.append(i))
    registry.remove(button.token)

    assert await registry.dispatch(button.token, Interaction(user=ALICE)) is False
    assert pressed == []


def test_remove_all_drops_only_given_tokens():
    registry = InteractionRegistry()
    keep = registry.register("Join", ButtonStyle.SUCCESS, lambda i: None)
    drop = [registry.register("Cancel", ButtonStyle.DANGER, lambda i: None) for _ in range(3)]

    registry.remove_all(b.token for b in drop)
    registry.remove_all(b.token for b in drop)

    assert len(registry) == 1
    assert keep.token in registry
