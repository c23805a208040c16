"""
PUBG API models and JSON:API payload parsing.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from statsgate.services.errors import NotFoundError


class Platform(str, Enum):
    """PUBG platform shards."""

    STEAM = "steam"
    KAKAO = "kakao"
    XBOX = "xbox"
    PSN = "psn"
    STADIA = "stadia"
    CONSOLE = "console"


class GameMode(str, Enum):
    """PUBG game modes."""

    SOLO = "solo"
    DUO = "duo"
    SQUAD = "squad"
    SOLO_FPP = "solo-fpp"
    DUO_FPP = "duo-fpp"
    SQUAD_FPP = "squad-fpp"


class RankTier(str, Enum):
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"
    DIAMOND = "Diamond"
    MASTER = "Master"
    GRANDMASTER = "Grandmaster"


class Player(BaseModel):
    """PUBG player account."""

    id: str
    name: str
    platform: str
    shard_id: str = ""
    title_id: str = "pubg"
    patch_version: str = ""
    created_at: str | None = None
    updated_at: str | None = None
    match_ids: list[str] = Field(default_factory=list)
    is_mock: bool = False


class GameModeStats(BaseModel):
    """Lifetime/season counters for one game mode."""

    assists: int = 0
    boosts: int = 0
    dbnos: int = Field(default=0, alias="dBNOs")
    damage_dealt: float = Field(default=0.0, alias="damageDealt")
    headshot_kills: int = Field(default=0, alias="headshotKills")
    heals: int = 0
    kills: int = 0
    longest_kill: float = Field(default=0.0, alias="longestKill")
    losses: int = 0
    max_kill_streaks: int = Field(default=0, alias="maxKillStreaks")
    revives: int = 0
    road_kills: int = Field(default=0, alias="roadKills")
    round_most_kills: int = Field(default=0, alias="roundMostKills")
    rounds_played: int = Field(default=0, alias="roundsPlayed")
    suicides: int = 0
    team_kills: int = Field(default=0, alias="teamKills")
    time_survived: float = Field(default=0.0, alias="timeSurvived")
    top10s: int = Field(default=0, alias="top10s")
    vehicle_destroys: int = Field(default=0, alias="vehicleDestroys")
    walk_distance: float = Field(default=0.0, alias="walkDistance")
    ride_distance: float = Field(default=0.0, alias="rideDistance")
    wins: int = 0

    model_config = {"populate_by_name": True}


class PlayerStats(BaseModel):
    """Season (or lifetime) stats for a player, keyed by game mode."""

    player_id: str
    season_id: str
    platform: str
    game_mode_stats: dict[str, GameModeStats] = Field(default_factory=dict)
    best_rank_point: float = 0.0


class Tier(BaseModel):
    tier: str = RankTier.BRONZE.value
    sub_tier: str = Field(default="V", alias="subTier")

    model_config = {"populate_by_name": True}


class SeasonStats(BaseModel):
    """Ranked stats for one player, season and game mode."""

    player_id: str
    season_id: str
    game_mode: str
    current_tier: Tier = Field(default_factory=Tier)
    current_rank_point: float = 0.0
    best_tier: Tier = Field(default_factory=Tier)
    best_rank_point: float = 0.0
    rounds_played: int = 0
    avg_rank: float = 0.0
    top10_ratio: float = 0.0
    win_ratio: float = 0.0
    assists: int = 0
    wins: int = 0
    kda: float = 0.0
    kills: int = 0
    deaths: int = 0
    damage_dealt: float = 0.0


class LeaderboardStats(BaseModel):
    rank_points: float = 0.0
    wins: int = 0
    games: int = 0
    win_ratio: float = 0.0
    average_damage: float = 0.0
    kills: int = 0
    kda: float = 0.0
    tier: str = RankTier.BRONZE.value
    sub_tier: str = "V"


class LeaderboardEntry(BaseModel):
    rank: int
    player_id: str
    player_name: str
    stats: LeaderboardStats = Field(default_factory=LeaderboardStats)


class Participant(BaseModel):
    player_id: str
    name: str
    kills: int = 0
    assists: int = 0
    damage_dealt: float = 0.0
    headshot_kills: int = 0
    time_survived: float = 0.0
    win_place: int = 0


class Match(BaseModel):
    id: str
    game_mode: str = ""
    map_name: str = ""
    duration: int = 0
    created_at: str | None = None
    season_state: str = ""
    shard_id: str = ""
    participants: list[Participant] = Field(default_factory=list)
    telemetry_url: str | None = None


class WeaponSummary(BaseModel):
    """Mastery progress for one weapon."""

    weapon_id: str
    xp_total: int = Field(default=0, alias="XPTotal")
    level: int = Field(default=0, alias="LevelCurrent")
    tier: int = Field(default=0, alias="TierCurrent")
    stats: dict[str, Any] = Field(default_factory=dict, alias="StatsTotal")

    model_config = {"populate_by_name": True}


class WeaponMastery(BaseModel):
    player_id: str
    platform: str
    latest_match_id: str = ""
    weapons: list[WeaponSummary] = Field(default_factory=list)


class SurvivalMastery(BaseModel):
    player_id: str
    platform: str
    xp: int = 0
    tier: int = 0
    tier_sub_level: int = Field(default=0, alias="tierSubLevel")
    level: int = 0
    total_matches_played: int = Field(default=0, alias="totalMatchesPlayed")
    latest_match_id: str | None = Field(default=None, alias="latestMatchId")
    stats: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


def parse_players(payload: dict[str, Any], platform: str) -> dict[str, Any]:
    """First player of a /players response, as a cacheable dict."""
    players = payload.get("data") or []
    if isinstance(players, dict):
        players = [players]
    if not players:
        raise NotFoundError("Player not found", service_id="pubg", status=404)

    raw = players[0]
    attributes = raw["attributes"]
    matches = (
        raw.get("relationships", {}).get("matches", {}).get("data", []) or []
    )
    return Player(
        id=raw["id"],
        name=attributes["name"],
        platform=platform,
        shard_id=attributes.get("shardId", platform),
        title_id=attributes.get("titleId", "pubg"),
        patch_version=attributes.get("patchVersion", "") or "",
        created_at=attributes.get("createdAt"),
        updated_at=attributes.get("updatedAt"),
        match_ids=[m["id"] for m in matches],
    ).model_dump(mode="json")


def parse_current_season(payload: dict[str, Any]) -> str:
    for season in payload.get("data") or []:
        if season.get("attributes", {}).get("isCurrentSeason"):
            return season["id"]
    raise NotFoundError("No current season found", service_id="pubg", status=404)


def parse_player_stats(
    payload: dict[str, Any], player_id: str, season_id: str, platform: str
) -> dict[str, Any]:
    attributes = payload["data"]["attributes"]
    modes = attributes.get("gameModeStats", {}) or {}
    return PlayerStats(
        player_id=player_id,
        season_id=season_id,
        platform=platform,
        game_mode_stats={
            mode: GameModeStats.model_validate(stats) for mode, stats in modes.items()
        },
        best_rank_point=attributes.get("bestRankPoint", 0) or 0,
    ).model_dump(mode="json", by_alias=False)


def parse_season_stats(
    payload: dict[str, Any], player_id: str, season_id: str, game_mode: str
) -> dict[str, Any]:
    ranked = payload["data"]["attributes"].get("rankedGameModeStats", {}) or {}
    stats = ranked.get(game_mode)
    if stats is None:
        raise NotFoundError(
            f"No ranked stats for {game_mode}", service_id="pubg", status=404
        )
    return SeasonStats(
        player_id=player_id,
        season_id=season_id,
        game_mode=game_mode,
        current_tier=Tier.model_validate(stats.get("currentTier") or {}),
        current_rank_point=stats.get("currentRankPoint", 0),
        best_tier=Tier.model_validate(stats.get("bestTier") or {}),
        best_rank_point=stats.get("bestRankPoint", 0),
        rounds_played=stats.get("roundsPlayed", 0),
        avg_rank=stats.get("avgRank", 0),
        top10_ratio=stats.get("top10Ratio", 0),
        win_ratio=stats.get("winRatio", 0),
        assists=stats.get("assists", 0),
        wins=stats.get("wins", 0),
        kda=stats.get("kda", 0),
        kills=stats.get("kills", 0),
        deaths=stats.get("deaths", 0),
        damage_dealt=stats.get("damageDealt", 0),
    ).model_dump(mode="json")


def parse_leaderboard(payload: dict[str, Any]) -> list[dict[str, Any]]:
    players = [
        item for item in payload.get("included") or [] if item.get("type") == "player"
    ]
    entries = []
    for index, item in enumerate(players):
        attributes = item.get("attributes", {})
        stats = attributes.get("stats", {}) or {}
        entries.append(
            LeaderboardEntry(
                rank=attributes.get("rank") or index + 1,
                player_id=item["id"],
                player_name=attributes.get("name", ""),
                stats=LeaderboardStats(
                    rank_points=stats.get("rankPoints", 0) or 0,
                    wins=stats.get("wins", 0) or 0,
                    games=stats.get("games", 0) or 0,
                    win_ratio=stats.get("winRatio", 0) or 0,
                    average_damage=stats.get("averageDamage", 0) or 0,
                    kills=stats.get("kills", 0) or 0,
                    kda=stats.get("kda", 0) or 0,
                    tier=stats.get("tier") or RankTier.BRONZE.value,
                    sub_tier=stats.get("subTier") or "V",
                ),
            ).model_dump(mode="json")
        )
    entries.sort(key=lambda entry: entry["rank"])
    return entries


def parse_match(payload: dict[str, Any]) -> dict[str, Any]:
    data = payload["data"]
    attributes = data.get("attributes", {})
    participants = []
    telemetry_url = None
    for item in payload.get("included") or []:
        if item.get("type") == "participant":
            stats = item.get("attributes", {}).get("stats", {}) or {}
            participants.append(
                Participant(
                    player_id=stats.get("playerId", ""),
                    name=stats.get("name", ""),
                    kills=stats.get("kills", 0),
                    assists=stats.get("assists", 0),
                    damage_dealt=stats.get("damageDealt", 0),
                    headshot_kills=stats.get("headshotKills", 0),
                    time_survived=stats.get("timeSurvived", 0),
                    win_place=stats.get("winPlace", 0),
                )
            )
        elif item.get("type") == "asset":
            telemetry_url = item.get("attributes", {}).get("URL")

    return Match(
        id=data["id"],
        game_mode=attributes.get("gameMode", ""),
        map_name=attributes.get("mapName", ""),
        duration=attributes.get("duration", 0),
        created_at=attributes.get("createdAt"),
        season_state=attributes.get("seasonState", ""),
        shard_id=attributes.get("shardId", ""),
        participants=participants,
        telemetry_url=telemetry_url,
    ).model_dump(mode="json")


def parse_weapon_mastery(
    payload: dict[str, Any], player_id: str, platform: str
) -> dict[str, Any]:
    attributes = payload["data"]["attributes"]
    summaries = attributes.get("weaponSummaries") or {}
    weapons = [
        WeaponSummary.model_validate({"weapon_id": weapon_id, **summary})
        for weapon_id, summary in summaries.items()
    ]
    weapons.sort(key=lambda weapon: weapon.xp_total, reverse=True)
    return WeaponMastery(
        player_id=player_id,
        platform=platform,
        latest_match_id=attributes.get("latestMatchId") or "",
        weapons=weapons,
    ).model_dump(mode="json")


def parse_survival_mastery(
    payload: dict[str, Any], player_id: str, platform: str
) -> dict[str, Any]:
    attributes = payload["data"]["attributes"]
    return SurvivalMastery.model_validate(
        {**attributes, "player_id": player_id, "platform": platform}
    ).model_dump(mode="json")
