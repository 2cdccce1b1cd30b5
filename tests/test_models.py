from __future__ import annotations

from bedrock_panel_gateway.models import merge_players


def test_merge_players_whitelist_only() -> None:
    players = merge_players([{"uuid": "u1", "name": "Steve"}], [])
    assert [p.to_dict() for p in players] == [
        {
            "id": "u1",
            "name": "Steve",
            "uuid": "u1",
            "online": False,
            "banned": False,
            "ipBanned": False,
            "op": False,
        }
    ]


def test_banned_only_player_gets_full_record() -> None:
    players = merge_players(
        [{"uuid": "u1", "name": "Steve"}],
        [{"uuid": "u2", "name": "Griefer", "reason": "tnt"}],
    )
    by_uuid = {p.uuid: p for p in players}
    assert set(by_uuid) == {"u1", "u2"}
    assert by_uuid["u2"].banned is True
    assert by_uuid["u2"].name == "Griefer"
    assert by_uuid["u2"].online is False
    assert by_uuid["u1"].banned is False


def test_merge_is_keyed_by_uuid() -> None:
    players = merge_players(
        [{"uuid": "u1", "name": "Steve"}],
        [{"uuid": "u1", "name": "Steve"}],
    )
    assert len(players) == 1
    assert players[0].banned is True


def test_ip_ban_links_by_name_and_ignores_bare_ips() -> None:
    players = merge_players(
        [{"uuid": "u1", "name": "Alex"}],
        [],
        [{"ip": "10.0.0.5", "name": "alex"}, {"ip": "10.0.0.6"}],
    )
    assert len(players) == 1
    assert players[0].ip_banned is True


def test_ops_flag_existing_players_only() -> None:
    players = merge_players(
        [{"uuid": "u1", "name": "Steve"}],
        [],
        [],
        [{"uuid": "u1", "name": "Steve", "level": 4}, {"uuid": "u9", "name": "Admin"}],
    )
    assert len(players) == 1
    assert players[0].op is True


def test_malformed_entries_are_skipped() -> None:
    players = merge_players(["Steve", {"level": 4}, {"name": "Alex"}], [None])
    assert [(p.id, p.name, p.uuid) for p in players] == [("Alex", "Alex", "")]
