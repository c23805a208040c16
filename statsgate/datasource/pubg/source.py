"""
PUBG developer API data source.

API Documentation: https://documentation.pubg.com/en/introduction.html
Rate limit: 10 requests/minute on the default key, so every call goes
through the shared pacer, breaker and retry policy of one ServiceClient.
"""

import re
from datetime import timedelta
from typing import Any

from loguru import logger

from statsgate.datasource.base import BaseDataSource
from statsgate.datasource.pubg.models import (
    GameMode,
    LeaderboardEntry,
    Match,
    Platform,
    Player,
    PlayerStats,
    SeasonStats,
    SurvivalMastery,
    WeaponMastery,
    parse_current_season,
    parse_leaderboard,
    parse_match,
    parse_player_stats,
    parse_players,
    parse_season_stats,
    parse_survival_mastery,
    parse_weapon_mastery,
)
from statsgate.services.cache import CacheManager
from statsgate.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from statsgate.services.client import RequestResult, ServiceClient, Unavailable
from statsgate.services.errors import ConfigurationError, InvalidInputError
from statsgate.services.events import EventSink
from statsgate.services.pacer import RequestPacer
from statsgate.services.retry import RetryExecutor, RetryPolicy
from statsgate.services.transport import HttpTransport
from statsgate.settings import Settings
from statsgate.store.base import CacheStore

PLAYER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,16}$")
REPEATED_SPECIALS = re.compile(r"[_-]{2,}")

# Fresh TTLs by data type; match data is immutable once the match is over
PLAYER_TTL = timedelta(hours=1)
STATS_TTL = timedelta(minutes=30)
SEASON_STATS_TTL = timedelta(hours=1)
MATCHES_TTL = timedelta(minutes=15)
MATCH_TTL = timedelta(hours=24)
CURRENT_SEASON_TTL = timedelta(hours=24)
LEADERBOARD_TTL = timedelta(hours=1)
MASTERY_TTL = timedelta(hours=1)

MAX_MATCHES = 20


def validate_player_name(name: Any) -> bool:
    """PUBG names: 3-16 of [A-Za-z0-9_-], no leading, trailing or repeated _/-."""
    if not name or not isinstance(name, str):
        return False
    name = name.strip()
    if not PLAYER_NAME_PATTERN.match(name):
        return False
    if REPEATED_SPECIALS.search(name):
        return False
    return name[0] not in "_-" and name[-1] not in "_-"


def _platform(value: Platform | str) -> str:
    try:
        return Platform(value).value
    except ValueError as e:
        raise InvalidInputError(f"Invalid platform: {value!r}", service_id="pubg") from e


def _game_mode(value: GameMode | str) -> str:
    try:
        return GameMode(value).value
    except ValueError as e:
        raise InvalidInputError(f"Invalid game mode: {value!r}", service_id="pubg") from e


def _require(value: str | None, field: str) -> str:
    if not value or not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{field} is required", service_id="pubg")
    return value.strip()


class PubgSource(BaseDataSource):
    """
    PUBG API data source.

    Every fetch_* method validates its input (raising InvalidInputError
    before any I/O) and otherwise degrades: stale data while the upstream
    is failing, None or an empty list when nothing is cached.

    Usage:
        source = create_pubg_source(global_settings, store)
        player = await source.fetch_player_by_name("shroud", Platform.STEAM)
        if isinstance(player, Unavailable):
            ...
    """

    SERVICE_ID = "pubg"
    HEADERS = {"Accept": "application/vnd.api+json"}

    def __init__(self, client: ServiceClient, offline: bool = False):
        super().__init__(client, offline=offline)
        if offline:
            logger.warning(
                "PUBG source is running in OFFLINE mode: no upstream calls will be "
                "made and player lookups return mock data. Set PUBG_API_KEY and "
                "unset PUBG_OFFLINE_MODE for production."
            )

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def is_configured(self) -> bool:
        return not self.offline

    @staticmethod
    def validate_player_name(name: Any) -> bool:
        return validate_player_name(name)

    # Players

    async def fetch_player_by_name(
        self, name: str, platform: Platform | str = Platform.STEAM
    ) -> Player | Unavailable | None:
        """
        Look up a player account by name.

        Returns:
            Player, None if the upstream does not know the name, or
            Unavailable if it failed and nothing was cached
        """
        if not validate_player_name(name):
            raise InvalidInputError(
                f"Invalid player name format: {name!r}", service_id=self.SERVICE_ID
            )
        name = name.strip()
        shard = _platform(platform)

        if self.offline:
            logger.warning(f"Offline mode: returning mock player for {name} on {shard}")
            return self._mock_player(name, shard)

        result = await self.client.fetch(
            cache_key=f"player:{shard}:{name.lower()}",
            path=f"/shards/{shard}/players",
            params={"filter[playerNames]": name},
            ttl=PLAYER_TTL,
            transform=lambda payload: parse_players(payload, shard),
        )
        if result.data is None:
            if result.not_found:
                logger.info(f"Player not found: {name} on {shard}")
                return None
            return result.to_unavailable()

        player = Player.model_validate(result.data)
        self._log_result("player", player.id, result)
        return player

    async def fetch_player_stats(
        self,
        player_id: str,
        platform: Platform | str = Platform.STEAM,
        season_id: str | None = None,
    ) -> PlayerStats | None:
        """Per-mode stats for a season (the current one if not given, or 'lifetime')."""
        player_id = _require(player_id, "player_id")
        shard = _platform(platform)
        if self.offline:
            return None

        season = season_id or await self.fetch_current_season(shard)
        if not season:
            logger.warning(f"No season available for stats of {player_id}")
            return None

        result = await self.client.fetch(
            cache_key=f"stats:{player_id}:{season}:all",
            path=f"/shards/{shard}/players/{player_id}/seasons/{season}",
            ttl=STATS_TTL,
            transform=lambda payload: parse_player_stats(
                payload, player_id, season, shard
            ),
        )
        if result.data is None:
            return None

        stats = PlayerStats.model_validate(result.data)
        self._log_result("stats", player_id, result)
        return stats

    async def fetch_season_stats(
        self,
        player_id: str,
        platform: Platform | str,
        season_id: str,
        game_mode: GameMode | str = GameMode.SQUAD_FPP,
    ) -> SeasonStats | None:
        """Ranked stats for one season and game mode."""
        player_id = _require(player_id, "player_id")
        season_id = _require(season_id, "season_id")
        shard = _platform(platform)
        mode = _game_mode(game_mode)
        if self.offline:
            return None

        result = await self.client.fetch(
            cache_key=f"season:{player_id}:{season_id}:{mode}",
            path=f"/shards/{shard}/players/{player_id}/seasons/{season_id}/ranked",
            ttl=SEASON_STATS_TTL,
            transform=lambda payload: parse_season_stats(
                payload, player_id, season_id, mode
            ),
        )
        if result.data is None:
            return None
        return SeasonStats.model_validate(result.data)

    # Matches

    async def fetch_player_matches(
        self,
        player_id: str,
        platform: Platform | str = Platform.STEAM,
        limit: int = 5,
    ) -> list[Match]:
        """Most recent matches of a player, newest first."""
        player_id = _require(player_id, "player_id")
        shard = _platform(platform)
        if limit < 1 or limit > MAX_MATCHES:
            raise InvalidInputError(
                f"limit must be between 1 and {MAX_MATCHES}", service_id=self.SERVICE_ID
            )
        if self.offline:
            return []

        result = await self.client.fetch(
            cache_key=f"matches:{player_id}",
            path=f"/shards/{shard}/players/{player_id}",
            ttl=MATCHES_TTL,
            transform=lambda payload: parse_players(payload, shard)["match_ids"],
        )
        if not result.data:
            return []

        matches = []
        for match_id in result.data[:limit]:
            match = await self.fetch_match(match_id, shard)
            if match is not None:
                matches.append(match)
        return matches

    async def fetch_match(
        self, match_id: str, platform: Platform | str = Platform.STEAM
    ) -> Match | None:
        match_id = _require(match_id, "match_id")
        shard = _platform(platform)
        if self.offline:
            return None

        result = await self.client.fetch(
            cache_key=f"match:{match_id}",
            path=f"/shards/{shard}/matches/{match_id}",
            ttl=MATCH_TTL,
            transform=parse_match,
        )
        if result.data is None:
            return None
        return Match.model_validate(result.data)

    # Mastery

    async def fetch_weapon_mastery(
        self, player_id: str, platform: Platform | str = Platform.STEAM
    ) -> WeaponMastery | None:
        """Per-weapon XP, level and tier, highest XP first."""
        player_id = _require(player_id, "player_id")
        shard = _platform(platform)
        if self.offline:
            return None

        result = await self.client.fetch(
            cache_key=f"weapon_mastery:{player_id}",
            path=f"/shards/{shard}/players/{player_id}/weapon_mastery",
            ttl=MASTERY_TTL,
            transform=lambda payload: parse_weapon_mastery(payload, player_id, shard),
        )
        if result.data is None:
            return None

        mastery = WeaponMastery.model_validate(result.data)
        self._log_result("weapon mastery", player_id, result)
        return mastery

    async def fetch_survival_mastery(
        self, player_id: str, platform: Platform | str = Platform.STEAM
    ) -> SurvivalMastery | None:
        player_id = _require(player_id, "player_id")
        shard = _platform(platform)
        if self.offline:
            return None

        result = await self.client.fetch(
            cache_key=f"survival_mastery:{player_id}",
            path=f"/shards/{shard}/players/{player_id}/survival_mastery",
            ttl=MASTERY_TTL,
            transform=lambda payload: parse_survival_mastery(payload, player_id, shard),
        )
        if result.data is None:
            return None

        mastery = SurvivalMastery.model_validate(result.data)
        self._log_result("survival mastery", player_id, result)
        return mastery

    # Seasons and leaderboards

    async def fetch_current_season(
        self, platform: Platform | str = Platform.STEAM
    ) -> str | None:
        shard = _platform(platform)
        if self.offline:
            return None

        result = await self.client.fetch(
            cache_key=f"season:current:{shard}",
            path=f"/shards/{shard}/seasons",
            ttl=CURRENT_SEASON_TTL,
            transform=parse_current_season,
        )
        return result.data

    async def fetch_leaderboard(
        self,
        platform: Platform | str = Platform.STEAM,
        game_mode: GameMode | str = GameMode.SQUAD_FPP,
        season_id: str | None = None,
    ) -> list[LeaderboardEntry]:
        shard = _platform(platform)
        mode = _game_mode(game_mode)
        if self.offline:
            return []

        season = season_id or await self.fetch_current_season(shard)
        if not season:
            return []

        result = await self.client.fetch(
            cache_key=f"leaderboard:{shard}:{mode}:{season}",
            path=f"/shards/{shard}/leaderboards/{season}/{mode}",
            ttl=LEADERBOARD_TTL,
            transform=parse_leaderboard,
        )
        if not result.data:
            return []

        entries = [LeaderboardEntry.model_validate(item) for item in result.data]
        logger.info(f"Fetched {len(entries)} leaderboard entries for {shard}/{mode}")
        return entries

    # Maintenance

    async def clear_cache(self, prefix: str = "") -> int:
        """Drop cached PUBG data (both tiers), optionally only under prefix."""
        removed = await self.client.clear_cache(prefix)
        logger.info(f"Cleared {removed} PUBG cache entries (prefix '{prefix}')")
        return removed

    def _mock_player(self, name: str, platform: str) -> Player:
        return Player(
            id=f"account.mock.{name.lower()}",
            name=name,
            platform=platform,
            shard_id=platform,
            is_mock=True,
        )

    def _log_result(self, kind: str, ident: str, result: RequestResult[Any]) -> None:
        if result.is_stale:
            logger.warning(f"Serving stale {kind} for {ident}: {result.error}")
        elif result.from_cache is None:
            logger.debug(f"Fetched {kind} for {ident} from upstream")


def create_pubg_source(
    settings: Settings,
    store: CacheStore,
    events: EventSink | None = None,
    transport: HttpTransport | None = None,
) -> PubgSource:
    """Wire a PubgSource with its own client, breaker and pacer from settings.

    Raises:
        ConfigurationError: No API key and offline mode not requested
    """
    if not settings.pubg_api_key and not settings.offline:
        logger.error(
            "PUBG_API_KEY is not set. Set it, or set PUBG_OFFLINE_MODE=true to "
            "serve mock data on purpose"
        )
        raise ConfigurationError("PUBG_API_KEY is required unless PUBG_OFFLINE_MODE is set")

    events = events or EventSink()
    transport = transport or HttpTransport(
        service_id=PubgSource.SERVICE_ID,
        base_url=settings.pubg_api_base_url,
        api_key=settings.pubg_api_key or None,
        timeout=settings.pubg_request_timeout,
        headers=PubgSource.HEADERS,
    )
    client = ServiceClient(
        transport=transport,
        cache=CacheManager(
            store,
            prefix=f"{settings.cache_key_prefix}{PubgSource.SERVICE_ID}:",
            stale_ttl_multiplier=settings.cache_stale_ttl_multiplier,
        ),
        breaker=CircuitBreaker(
            PubgSource.SERVICE_ID,
            config=CircuitBreakerConfig(
                failure_threshold=settings.breaker_failure_threshold,
                open_timeout=timedelta(seconds=settings.breaker_open_timeout),
                half_open_max_probes=settings.breaker_half_open_max_probes,
            ),
            events=events,
        ),
        pacer=RequestPacer(min_interval=settings.pubg_min_request_interval),
        retry=RetryExecutor(
            policy=RetryPolicy(
                max_retries=settings.retry_max_retries,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
                jitter_factor=settings.retry_jitter_factor,
            ),
            events=events,
        ),
        events=events,
    )
    source = PubgSource(client, offline=settings.offline)
    source.health.probe_timeout = settings.health_probe_timeout
    return source
