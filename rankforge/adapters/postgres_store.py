"""PostgreSQL event store using asyncpg.

One transaction per match: the match row, its rounds, every linked event,
accolades and the per-player snapshots commit together or not at all.
``UNIQUE (end_timestamp, map_name)`` makes a second write of the same match a
no-op. Player stats are append-only; the current view is the newest snapshot
by game timestamp.
"""

import json
import logging
from datetime import datetime
from typing import Any

import asyncpg

from rankforge.config.settings import settings
from rankforge.contracts.match import MatchBatch
from rankforge.contracts.player_stats import LeaderboardEntry, PlayerStats
from rankforge.core.errors import StoreError
from rankforge.core.observability import trace_adapter
from rankforge.core.ports import EventStorePort

logger = logging.getLogger(__name__)

_STATS_COLUMNS = (
    "player_id",
    "last_seen_nickname",
    "kills",
    "deaths",
    "assists",
    "headshot_kills",
    "rounds_played",
    "clutches_won",
    "damage_dealt",
    "rating",
    "matches_played",
    "game_timestamp",
    "last_updated",
)
_STATS_SELECT = ", ".join(_STATS_COLUMNS)


def _row_to_stats(row: Any) -> PlayerStats:
    return PlayerStats(**{column: row[column] for column in _STATS_COLUMNS})


def _stats_args(stats: PlayerStats, match_id: int | None) -> tuple[Any, ...]:
    return (
        stats.player_id,
        match_id,
        stats.last_seen_nickname,
        stats.kills,
        stats.deaths,
        stats.assists,
        stats.headshot_kills,
        stats.rounds_played,
        stats.clutches_won,
        stats.damage_dealt,
        stats.rating,
        stats.matches_played,
        stats.game_timestamp,
        stats.last_updated,
    )


_INSERT_SNAPSHOT = """
    INSERT INTO player_stats_history (
        player_id, match_id, last_seen_nickname, kills, deaths, assists,
        headshot_kills, rounds_played, clutches_won, damage_dealt, rating,
        matches_played, game_timestamp, last_updated
    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
"""


class PostgresEventStore(EventStorePort):
    """``EventStorePort`` implementation backed by an asyncpg pool.

    Features:
    - Async connection pooling
    - JSONB event payloads
    - Timezone-aware timestamps
    - Idempotent match writes
    """

    def __init__(self, dsn: str | None = None) -> None:
        self._dsn = dsn
        self._pool: Any = None  # asyncpg.Pool (untyped library)
        logger.info("Postgres event store initialized")

    async def connect(self) -> None:
        """Create the connection pool and make sure the schema exists."""
        if self._pool is not None:
            logger.warning("Database pool already exists")
            return

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._dsn or settings.database_url,
                min_size=settings.database_pool_min_size,
                max_size=settings.database_pool_size,
                max_inactive_connection_lifetime=300,
                command_timeout=settings.database_pool_timeout,
            )
            logger.info("Database connection pool created successfully")
            await self._initialize_schema()
        except Exception as e:
            logger.error(f"Failed to create database pool: {e}")
            raise

    async def disconnect(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database connection pool closed")

    def _require_pool(self) -> Any:
        if not self._pool:
            raise StoreError("Database pool not initialized")
        return self._pool

    async def _initialize_schema(self) -> None:
        """Create required tables if they don't exist."""
        pool = self._require_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS matches (
                    id BIGSERIAL PRIMARY KEY,
                    end_timestamp TIMESTAMPTZ NOT NULL,
                    map_name VARCHAR(64) NOT NULL,
                    mode VARCHAR(64) NOT NULL,
                    team1_score INTEGER NOT NULL,
                    team2_score INTEGER NOT NULL,
                    duration_minutes INTEGER,
                    start_timestamp TIMESTAMPTZ,
                    server_id BIGINT,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                    UNIQUE (end_timestamp, map_name)
                );

                CREATE INDEX IF NOT EXISTS idx_matches_server
                ON matches(server_id);
            """
            )

            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rounds (
                    id BIGSERIAL PRIMARY KEY,
                    match_id BIGINT NOT NULL REFERENCES matches(id) ON DELETE CASCADE,
                    number INTEGER NOT NULL,
                    start_timestamp TIMESTAMPTZ,
                    end_timestamp TIMESTAMPTZ,
                    winner VARCHAR(4),
                    participants JSONB NOT NULL DEFAULT '[]'::jsonb,
                    UNIQUE (match_id, number)
                );
            """
            )

            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS game_events (
                    id BIGSERIAL PRIMARY KEY,
                    match_id BIGINT NOT NULL REFERENCES matches(id) ON DELETE CASCADE,
                    round_id BIGINT REFERENCES rounds(id) ON DELETE CASCADE,
                    sequence INTEGER NOT NULL,
                    event_type VARCHAR(32) NOT NULL,
                    event_timestamp TIMESTAMPTZ NOT NULL,
                    orphan BOOLEAN NOT NULL DEFAULT FALSE,
                    payload JSONB NOT NULL,
                    UNIQUE (match_id, sequence)
                );

                CREATE INDEX IF NOT EXISTS idx_game_events_round
                ON game_events(round_id);

                CREATE INDEX IF NOT EXISTS idx_game_events_type
                ON game_events(event_type);
            """
            )

            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS accolades (
                    id BIGSERIAL PRIMARY KEY,
                    match_id BIGINT NOT NULL REFERENCES matches(id) ON DELETE CASCADE,
                    accolade_type VARCHAR(64) NOT NULL,
                    player_name VARCHAR(255) NOT NULL,
                    player_slot VARCHAR(16) NOT NULL,
                    player_id VARCHAR(64),
                    value DOUBLE PRECISION NOT NULL,
                    position INTEGER NOT NULL,
                    score DOUBLE PRECISION NOT NULL,
                    awarded_at TIMESTAMPTZ NOT NULL
                );
            """
            )

            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS player_stats_history (
                    id BIGSERIAL PRIMARY KEY,
                    player_id VARCHAR(64) NOT NULL,
                    match_id BIGINT REFERENCES matches(id) ON DELETE SET NULL,
                    last_seen_nickname VARCHAR(255),
                    kills INTEGER NOT NULL DEFAULT 0,
                    deaths INTEGER NOT NULL DEFAULT 0,
                    assists INTEGER NOT NULL DEFAULT 0,
                    headshot_kills INTEGER NOT NULL DEFAULT 0,
                    rounds_played INTEGER NOT NULL DEFAULT 0,
                    clutches_won INTEGER NOT NULL DEFAULT 0,
                    damage_dealt DOUBLE PRECISION NOT NULL DEFAULT 0,
                    rating DOUBLE PRECISION NOT NULL,
                    matches_played INTEGER NOT NULL DEFAULT 0,
                    game_timestamp TIMESTAMPTZ,
                    last_updated TIMESTAMPTZ,
                    archived_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                );

                CREATE INDEX IF NOT EXISTS idx_player_stats_history_current
                ON player_stats_history(player_id, game_timestamp DESC, id DESC);
            """
            )

            logger.info("Database schema initialized")

    @trace_adapter
    async def persist_match(self, batch: MatchBatch, snapshots: list[PlayerStats]) -> bool:
        pool = self._require_pool()
        match = batch.match

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    match_id = await conn.fetchval(
                        """
                        INSERT INTO matches (
                            end_timestamp, map_name, mode, team1_score, team2_score,
                            duration_minutes, start_timestamp, server_id
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                        ON CONFLICT (end_timestamp, map_name) DO NOTHING
                        RETURNING id
                        """,
                        match.end_timestamp,
                        match.map_name,
                        match.mode,
                        match.team1_score,
                        match.team2_score,
                        match.duration_minutes,
                        match.start_timestamp,
                        match.server_id,
                    )
                    if match_id is None:
                        logger.info(f"Match {batch.key} already stored")
                        return False

                    round_ids: dict[int, int] = {}
                    for rnd in batch.rounds:
                        round_ids[rnd.number] = await conn.fetchval(
                            """
                            INSERT INTO rounds (
                                match_id, number, start_timestamp, end_timestamp,
                                winner, participants
                            ) VALUES ($1, $2, $3, $4, $5, $6)
                            RETURNING id
                            """,
                            match_id,
                            rnd.number,
                            rnd.start_timestamp,
                            rnd.end_timestamp,
                            rnd.winner.value if rnd.winner else None,
                            json.dumps(list(rnd.participants)),
                        )

                    await conn.executemany(
                        """
                        INSERT INTO game_events (
                            match_id, round_id, sequence, event_type,
                            event_timestamp, orphan, payload
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                        """,
                        [
                            (
                                match_id,
                                round_ids.get(linked.round_number) if linked.round_number else None,
                                linked.sequence,
                                linked.event.type.value,
                                linked.event.timestamp,
                                linked.orphan,
                                linked.event.model_dump_json(),
                            )
                            for linked in batch.events
                        ],
                    )

                    await conn.executemany(
                        """
                        INSERT INTO accolades (
                            match_id, accolade_type, player_name, player_slot,
                            player_id, value, position, score, awarded_at
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                        """,
                        [
                            (
                                match_id,
                                a.accolade_type,
                                a.player_name,
                                a.player_slot,
                                a.player_id,
                                a.value,
                                a.position,
                                a.score,
                                a.timestamp or match.end_timestamp,
                            )
                            for a in batch.accolades
                        ],
                    )

                    await conn.executemany(
                        _INSERT_SNAPSHOT, [_stats_args(s, match_id) for s in snapshots]
                    )

            logger.info(f"Saved match {batch.key} as id {match_id}")
            return True

        except Exception as e:
            logger.error(f"Error persisting match {batch.key}: {e}")
            raise StoreError(f"Failed to persist match {batch.key}") from e

    @trace_adapter
    async def find_duplicate(self, end_timestamp: datetime, map_name: str) -> str | None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                match_id = await conn.fetchval(
                    """
                    SELECT id FROM matches
                    WHERE end_timestamp = $1 AND map_name = $2
                    """,
                    end_timestamp,
                    map_name,
                )
        except Exception as e:
            logger.error(f"Error checking duplicate for {map_name}@{end_timestamp}: {e}")
            raise StoreError("Duplicate lookup failed") from e
        return str(match_id) if match_id is not None else None

    @trace_adapter
    async def archive_player_snapshot(self, stats: PlayerStats) -> None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(_INSERT_SNAPSHOT, *_stats_args(stats, None))
        except Exception as e:
            logger.error(f"Error archiving snapshot for {stats.player_id}: {e}")
            raise StoreError(f"Failed to archive snapshot for {stats.player_id}") from e

    async def get_player_stats(self, player_id: str) -> PlayerStats | None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    SELECT {_STATS_SELECT}
                    FROM player_stats_history
                    WHERE player_id = $1
                    ORDER BY game_timestamp DESC NULLS LAST, id DESC
                    LIMIT 1
                    """,
                    player_id,
                )
        except Exception as e:
            logger.error(f"Error fetching stats for {player_id}: {e}")
            raise StoreError(f"Failed to fetch stats for {player_id}") from e
        return _row_to_stats(row) if row else None

    async def get_player_stats_before(self, player_id: str, before: datetime) -> PlayerStats | None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    SELECT {_STATS_SELECT}
                    FROM player_stats_history
                    WHERE player_id = $1 AND game_timestamp < $2
                    ORDER BY game_timestamp DESC, id DESC
                    LIMIT 1
                    """,
                    player_id,
                    before,
                )
        except Exception as e:
            logger.error(f"Error fetching stats for {player_id} before {before}: {e}")
            raise StoreError(f"Failed to fetch stats for {player_id}") from e
        return _row_to_stats(row) if row else None

    async def get_players_stats(self, player_ids: list[str]) -> dict[str, PlayerStats]:
        if not player_ids:
            return {}
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT DISTINCT ON (player_id) {_STATS_SELECT}
                    FROM player_stats_history
                    WHERE player_id = ANY($1::text[])
                    ORDER BY player_id, game_timestamp DESC NULLS LAST, id DESC
                    """,
                    player_ids,
                )
        except Exception as e:
            logger.error(f"Error fetching stats for {len(player_ids)} players: {e}")
            raise StoreError("Failed to fetch player stats") from e
        return {row["player_id"]: _row_to_stats(row) for row in rows}

    async def get_player_history(self, player_id: str, limit: int = 50) -> list[PlayerStats]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {_STATS_SELECT}
                    FROM player_stats_history
                    WHERE player_id = $1
                    ORDER BY game_timestamp DESC NULLS LAST, id DESC
                    LIMIT $2
                    """,
                    player_id,
                    limit,
                )
        except Exception as e:
            logger.error(f"Error fetching history for {player_id}: {e}")
            raise StoreError(f"Failed to fetch history for {player_id}") from e
        return [_row_to_stats(row) for row in rows]

    async def get_leaderboard(self, limit: int = 20) -> list[LeaderboardEntry]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT player_id, last_seen_nickname, rating, matches_played, kills, deaths
                    FROM (
                        SELECT DISTINCT ON (player_id)
                               player_id, last_seen_nickname, rating, matches_played,
                               kills, deaths
                        FROM player_stats_history
                        ORDER BY player_id, game_timestamp DESC NULLS LAST, id DESC
                    ) AS current
                    ORDER BY rating DESC
                    LIMIT $1
                    """,
                    limit,
                )
        except Exception as e:
            logger.error(f"Error fetching leaderboard: {e}")
            raise StoreError("Failed to fetch leaderboard") from e

        return [
            LeaderboardEntry(
                position=i + 1,
                player_id=row["player_id"],
                nickname=row["last_seen_nickname"],
                rating=row["rating"],
                matches_played=row["matches_played"],
                kills=row["kills"],
                deaths=row["deaths"],
            )
            for i, row in enumerate(rows)
        ]
