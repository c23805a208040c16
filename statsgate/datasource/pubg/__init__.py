"""
PUBG developer API data source.
"""

from statsgate.datasource.pubg.models import (
    GameMode,
    GameModeStats,
    LeaderboardEntry,
    Match,
    Participant,
    Platform,
    Player,
    PlayerStats,
    RankTier,
    SeasonStats,
    SurvivalMastery,
    WeaponMastery,
    WeaponSummary,
)
from statsgate.datasource.pubg.source import (
    PubgSource,
    create_pubg_source,
    validate_player_name,
)

__all__ = [
    "GameMode",
    "GameModeStats",
    "LeaderboardEntry",
    "Match",
    "Participant",
    "Platform",
    "Player",
    "PlayerStats",
    "RankTier",
    "SeasonStats",
    "SurvivalMastery",
    "WeaponMastery",
    "WeaponSummary",
    "PubgSource",
    "create_pubg_source",
    "validate_player_name",
]
