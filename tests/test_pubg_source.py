import httpx
import pytest

from statsgate.datasource.pubg import (
    GameMode,
    Platform,
    Player,
    PubgSource,
    create_pubg_source,
    validate_player_name,
)
from statsgate.services import (
    CircuitState,
    ConfigurationError,
    HealthStatus,
    InvalidInputError,
    Unavailable,
)
from statsgate.settings import Settings
from statsgate.store import MemoryCacheStore
from tests.conftest import timeout_error

PLAYER_PAYLOAD = {
    "data": [
        {
            "type": "player",
            "id": "account.abc",
            "attributes": {
                "name": "Shroud",
                "shardId": "steam",
                "titleId": "pubg",
                "patchVersion": "",
            },
            "relationships": {
                "matches": {"data": [{"type": "match", "id": "m1"}, {"type": "match", "id": "m2"}]}
            },
        }
    ]
}

SEASONS_PAYLOAD = {
    "data": [
        {"type": "season", "id": "division.bro.official.pc-2018-30",
         "attributes": {"isCurrentSeason": False, "isOffseason": False}},
        {"type": "season", "id": "division.bro.official.pc-2018-31",
         "attributes": {"isCurrentSeason": True, "isOffseason": False}},
    ]
}

STATS_PAYLOAD = {
    "data": {
        "type": "playerSeason",
        "attributes": {
            "gameModeStats": {
                "squad-fpp": {"kills": 120, "wins": 4, "roundsPlayed": 50, "damageDealt": 9000.5},
                "solo": {"kills": 3},
            },
            "bestRankPoint": 2100.0,
        },
    }
}

RANKED_PAYLOAD = {
    "data": {
        "type": "rankedplayerstats",
        "attributes": {
            "rankedGameModeStats": {
                "squad-fpp": {
                    "currentTier": {"tier": "Gold", "subTier": "2"},
                    "currentRankPoint": 2300,
                    "bestTier": {"tier": "Platinum", "subTier": "5"},
                    "roundsPlayed": 40,
                    "kda": 1.8,
                    "wins": 3,
                }
            }
        },
    }
}

LEADERBOARD_PAYLOAD = {
    "data": {"type": "leaderboard", "id": "lb", "attributes": {"gameMode": "squad-fpp"}},
    "included": [
        {"type": "player", "id": "account.2",
         "attributes": {"name": "Second", "rank": 2, "stats": {"rankPoints": 5000, "wins": 10}}},
        {"type": "player", "id": "account.1",
         "attributes": {"name": "First", "rank": 1, "stats": {"rankPoints": 6000, "tier": "Master"}}},
    ],
}


def match_payload(match_id: str) -> dict:
    return {
        "data": {
            "type": "match",
            "id": match_id,
            "attributes": {"gameMode": "squad-fpp", "mapName": "Baltic_Main", "duration": 1800,
                           "createdAt": "2024-01-01T00:00:00Z", "shardId": "steam"},
        },
        "included": [
            {"type": "participant", "id": "p1",
             "attributes": {"stats": {"playerId": "account.abc", "name": "Shroud", "kills": 7, "winPlace": 1}}},
            {"type": "asset", "id": "a1", "attributes": {"URL": "https://telemetry.test/x.json"}},
        ],
    }


@pytest.fixture
def source(make_client) -> PubgSource:
    return PubgSource(make_client())


@pytest.mark.parametrize(
    "name, valid",
    [
        ("Shroud", True),
        ("a_b-c", True),
        ("ab", False),
        ("x" * 17, False),
        ("_lead", False),
        ("trail-", False),
        ("dou__ble", False),
        ("mix_-ed", False),
        ("spa ce", False),
        ("", False),
        (None, False),
    ],
)
def test_validate_player_name(name, valid):
    assert validate_player_name(name) is valid


@pytest.mark.asyncio
async def test_invalid_input_raises_before_io(source, upstream):
    with pytest.raises(InvalidInputError):
        await source.fetch_player_by_name("__bad__")
    with pytest.raises(InvalidInputError):
        await source.fetch_player_by_name("Shroud", "gamecube")
    with pytest.raises(InvalidInputError):
        await source.fetch_season_stats("account.abc", "steam", "s1", "quad")
    with pytest.raises(InvalidInputError):
        await source.fetch_player_matches("account.abc", limit=0)
    assert upstream.calls == []


@pytest.mark.asyncio
async def test_fetch_player_by_name(source, upstream):
    upstream.routes["/shards/steam/players"] = PLAYER_PAYLOAD

    player = await source.fetch_player_by_name("Shroud", Platform.STEAM)
    again = await source.fetch_player_by_name("shroud", "steam")

    assert isinstance(player, Player)
    assert player.id == "account.abc" and player.match_ids == ["m1", "m2"]
    assert again == player
    assert upstream.count("/shards/steam/players") == 1
    assert upstream.calls[0].url.params["filter[playerNames]"] == "Shroud"


@pytest.mark.asyncio
async def test_unknown_player_is_none(source):
    assert await source.fetch_player_by_name("Nobody") is None


@pytest.mark.asyncio
async def test_outage_without_cache_is_unavailable(source, upstream):
    upstream.routes["/shards/steam/players"] = timeout_error()
    result = await source.fetch_player_by_name("Shroud")
    assert isinstance(result, Unavailable)
    assert result.error_type == "RequestTimeoutError"


@pytest.mark.asyncio
async def test_fetch_player_stats_uses_current_season(source, upstream):
    season = "division.bro.official.pc-2018-31"
    upstream.routes["/shards/steam/seasons"] = SEASONS_PAYLOAD
    upstream.routes[f"/shards/steam/players/account.abc/seasons/{season}"] = STATS_PAYLOAD

    stats = await source.fetch_player_stats("account.abc", Platform.STEAM)

    assert stats.season_id == season
    squad = stats.game_mode_stats["squad-fpp"]
    assert squad.kills == 120 and squad.rounds_played == 50
    assert stats.game_mode_stats["solo"].kills == 3
    assert stats.best_rank_point == 2100.0


@pytest.mark.asyncio
async def test_player_stats_survive_outage_from_stale_copies(
    source, upstream, store, clock
):
    season = "division.bro.official.pc-2018-31"
    stats_path = f"/shards/steam/players/account.abc/seasons/{season}"
    upstream.routes["/shards/steam/seasons"] = SEASONS_PAYLOAD
    upstream.routes[stats_path] = STATS_PAYLOAD
    warm = await source.fetch_player_stats("account.abc", Platform.STEAM)

    # Fresh tier gone for both the stats and the season lookup
    clock.advance(31 * 60)
    await store.delete("test:season:current:steam")
    upstream.routes["/shards/steam/seasons"] = timeout_error()
    upstream.routes[stats_path] = timeout_error()
    upstream.routes["/status"] = timeout_error()
    warm_calls = len(upstream.calls)

    # Each call times out on the season and then on the stats lookup;
    # the fifth timeout opens the breaker
    for _ in range(3):
        stats = await source.fetch_player_stats("account.abc", Platform.STEAM)
        assert stats == warm
    assert len(upstream.calls) - warm_calls == 5
    assert source.client.breaker.state == CircuitState.OPEN

    calls_before = len(upstream.calls)
    clock.advance(10)
    stats = await source.fetch_player_stats("account.abc", Platform.STEAM)

    assert stats == warm
    assert stats.game_mode_stats["squad-fpp"].kills == 120
    assert len(upstream.calls) == calls_before

    report = await source.health_check()
    assert report.status == HealthStatus.DEGRADED
    assert report.api_probe_skipped
    assert len(upstream.calls) == calls_before


WEAPON_MASTERY_PAYLOAD = {
    "data": {
        "type": "weaponMasterySummary",
        "id": "account.abc",
        "attributes": {
            "platform": "steam",
            "latestMatchId": "m1",
            "weaponSummaries": {
                "Item_Weapon_AK47_C": {
                    "XPTotal": 1200, "LevelCurrent": 12, "TierCurrent": 2,
                    "StatsTotal": {"Kills": 40, "HeadShots": 9},
                },
                "Item_Weapon_HK416_C": {
                    "XPTotal": 5400, "LevelCurrent": 31, "TierCurrent": 4,
                    "StatsTotal": {"Kills": 180},
                },
            },
        },
    }
}

SURVIVAL_MASTERY_PAYLOAD = {
    "data": {
        "type": "survivalMasterySummary",
        "id": "account.abc",
        "attributes": {
            "xp": 9050,
            "tier": 3,
            "tierSubLevel": 2,
            "level": 47,
            "totalMatchesPlayed": 310,
            "latestMatchId": None,
            "stats": {"airDropsCalled": {"total": 4}},
        },
    }
}


@pytest.mark.asyncio
async def test_fetch_weapon_mastery(source, upstream):
    path = "/shards/steam/players/account.abc/weapon_mastery"
    upstream.routes[path] = WEAPON_MASTERY_PAYLOAD

    mastery = await source.fetch_weapon_mastery("account.abc", "steam")
    again = await source.fetch_weapon_mastery("account.abc", "steam")

    assert [w.weapon_id for w in mastery.weapons] == [
        "Item_Weapon_HK416_C",
        "Item_Weapon_AK47_C",
    ]
    assert mastery.weapons[1].level == 12 and mastery.weapons[1].stats["HeadShots"] == 9
    assert mastery.latest_match_id == "m1"
    assert again == mastery
    assert upstream.count(path) == 1


@pytest.mark.asyncio
async def test_fetch_survival_mastery(source, upstream):
    upstream.routes["/shards/steam/players/account.abc/survival_mastery"] = (
        SURVIVAL_MASTERY_PAYLOAD
    )

    mastery = await source.fetch_survival_mastery("account.abc")

    assert mastery.level == 47 and mastery.tier_sub_level == 2
    assert mastery.total_matches_played == 310
    assert mastery.latest_match_id is None
    assert mastery.stats["airDropsCalled"]["total"] == 4


@pytest.mark.asyncio
async def test_mastery_missing_or_offline(source, make_client, upstream):
    assert await source.fetch_weapon_mastery("account.nobody") is None
    with pytest.raises(InvalidInputError):
        await source.fetch_survival_mastery("", "steam")

    offline = PubgSource(make_client(), offline=True)
    calls = len(upstream.calls)
    assert await offline.fetch_weapon_mastery("account.abc") is None
    assert await offline.fetch_survival_mastery("account.abc") is None
    assert len(upstream.calls) == calls


@pytest.mark.asyncio
async def test_fetch_season_stats(source, upstream):
    upstream.routes["/shards/steam/players/account.abc/seasons/s31/ranked"] = RANKED_PAYLOAD

    ranked = await source.fetch_season_stats("account.abc", "steam", "s31", GameMode.SQUAD_FPP)
    assert ranked.current_tier.tier == "Gold"
    assert ranked.best_tier.sub_tier == "5"
    assert ranked.kda == 1.8

    assert await source.fetch_season_stats("account.abc", "steam", "s31", "solo") is None


@pytest.mark.asyncio
async def test_fetch_player_matches(source, upstream):
    upstream.routes["/shards/steam/players/account.abc"] = {"data": PLAYER_PAYLOAD["data"][0]}
    upstream.routes["/shards/steam/matches/m1"] = match_payload("m1")
    upstream.routes["/shards/steam/matches/m2"] = httpx.Response(404)

    matches = await source.fetch_player_matches("account.abc", limit=5)

    assert [m.id for m in matches] == ["m1"]
    assert matches[0].participants[0].kills == 7
    assert matches[0].telemetry_url == "https://telemetry.test/x.json"


@pytest.mark.asyncio
async def test_fetch_leaderboard_sorted_by_rank(source, upstream):
    upstream.routes["/shards/steam/leaderboards/s31/squad-fpp"] = LEADERBOARD_PAYLOAD

    entries = await source.fetch_leaderboard("steam", "squad-fpp", season_id="s31")

    assert [e.player_name for e in entries] == ["First", "Second"]
    assert entries[0].stats.tier == "Master"


@pytest.mark.asyncio
async def test_no_current_season(source, upstream):
    upstream.routes["/shards/steam/seasons"] = {"data": []}
    assert await source.fetch_current_season("steam") is None
    assert await source.fetch_leaderboard("steam") == []


@pytest.mark.asyncio
async def test_clear_cache_and_stats(source, upstream):
    upstream.routes["/shards/steam/players"] = PLAYER_PAYLOAD
    await source.fetch_player_by_name("Shroud")

    assert await source.clear_cache("player:") == 2
    assert source.get_cache_stats()["misses"] == 1


@pytest.mark.asyncio
async def test_offline_mode_serves_mocks_without_io(make_client, upstream):
    source = PubgSource(make_client(), offline=True)

    player = await source.fetch_player_by_name("Shroud")
    assert player.is_mock and player.id == "account.mock.shroud"
    assert await source.fetch_player_stats("account.abc") is None
    assert await source.fetch_leaderboard() == []
    assert await source.fetch_player_matches("account.abc") == []
    assert not await source.is_api_available()
    assert not source.is_configured()
    assert upstream.calls == []


@pytest.mark.asyncio
async def test_is_api_available(source, upstream):
    upstream.routes["/status"] = {"data": {"type": "status", "id": "pubg-api"}}
    assert await source.is_api_available()


def test_factory_wires_settings():
    settings = Settings(
        pubg_api_key="key",
        breaker_failure_threshold=7,
        retry_max_retries=1,
        pubg_min_request_interval=0.5,
        health_probe_timeout=2.0,
    )
    source = create_pubg_source(settings, MemoryCacheStore())

    assert not source.offline
    assert source.client.breaker.config.failure_threshold == 7
    assert source.client.retry.policy.max_retries == 1
    assert source.client.pacer.min_interval == 0.5
    assert source.health.probe_timeout == 2.0


def test_factory_refuses_missing_key():
    with pytest.raises(ConfigurationError):
        create_pubg_source(Settings(pubg_api_key=""), MemoryCacheStore())


def test_factory_offline_on_request():
    settings = Settings(pubg_api_key="", pubg_offline_mode=True)
    source = create_pubg_source(settings, MemoryCacheStore())
    assert source.offline
    assert not source.is_configured()
