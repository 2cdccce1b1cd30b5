from __future__ import annotations

import asyncio

import pytest

from bedrock_panel_gateway.actions import (
    ActionDispatcher,
    build_addon_packs,
    fetch_or_default,
    toggle_manifest,
)
from bedrock_panel_gateway.errors import MissingServerIdentifier, UnknownAction

from conftest import SERVER_UUID


def test_fetch_or_default_passes_through_success() -> None:
    async def ok():
        return [1, 2]

    assert asyncio.run(fetch_or_default(ok(), [], "ok")) == [1, 2]


def test_fetch_or_default_swallows_failures() -> None:
    async def broken():
        raise ValueError("bad json")

    assert asyncio.run(fetch_or_default(broken(), [], "broken")) == []


def test_dispatcher_recognizes_twelve_actions(config) -> None:
    assert len(ActionDispatcher(config).actions) == 12


def test_dispatch_validation_order(config) -> None:
    dispatcher = ActionDispatcher(config)

    with pytest.raises(MissingServerIdentifier):
        asyncio.run(dispatcher.dispatch("   ", "nope"))
    with pytest.raises(UnknownAction) as exc_info:
        asyncio.run(dispatcher.dispatch(SERVER_UUID, "nope"))
    assert str(exc_info.value) == "Unknown action: nope"


def test_build_addon_packs_skips_files_and_entries_without_flag() -> None:
    entries = [
        {"attributes": {"name": "alpha", "is_file": False}},
        {"attributes": {"name": "manifest.json", "is_file": True}},
        {"attributes": {"name": "mystery"}},
        {"attributes": {"is_file": False}},
        "junk",
    ]
    packs = build_addon_packs(entries, [{"pack_id": "alpha"}, "junk"], "behavior")

    assert [(p.id, p.name, p.enabled, p.priority) for p in packs] == [
        ("alpha", "alpha", True, 1),
        ("bp-1", "Unknown Pack", False, 2),
    ]


def test_toggle_manifest() -> None:
    manifest = [{"pack_id": "a", "version": [2, 1, 0]}]

    assert toggle_manifest(manifest, "a", True) == manifest
    assert toggle_manifest(manifest, "a", False) == []
    assert toggle_manifest(manifest, "b", True, [1, 2, 3]) == [
        {"pack_id": "a", "version": [2, 1, 0]},
        {"pack_id": "b", "version": [1, 2, 3]},
    ]
