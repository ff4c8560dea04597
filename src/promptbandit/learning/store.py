"""Learning state persistence: PosteriorStore protocol + SQLite backend.

PosteriorStore is the protocol. Code against it.
SqlitePosteriorStore is the implementation: async via aiosqlite, WAL
journal, bounded busy timeout, so many short-lived processes can share
one learning.db.

Tables:
    arm_posteriors  one row per arm, upserted, never deleted
    run_traces      one row per turn, append-only
    trace_arms      per-arm rows of each trace (position keeps order)
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, TypeVar, runtime_checkable

import aiosqlite

from promptbandit.learning.errors import StoreError, StoreTimeoutError
from promptbandit.learning.types import (
    ArmId,
    ArmOutcome,
    ArmPosterior,
    RunTrace,
    TokenUsage,
)
from promptbandit.observability.logging import get_logger
from promptbandit.observability.tracing import traced

T = TypeVar("T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS arm_posteriors (
    arm_id TEXT PRIMARY KEY,
    alpha REAL NOT NULL DEFAULT 1.0,
    beta REAL NOT NULL DEFAULT 1.0,
    pulls INTEGER NOT NULL DEFAULT 0,
    last_updated INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS run_traces (
    trace_id TEXT PRIMARY KEY,
    run_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    session_key TEXT,
    timestamp INTEGER NOT NULL,
    provider TEXT,
    model TEXT,
    channel TEXT,
    is_baseline INTEGER NOT NULL DEFAULT 0,
    context_json TEXT NOT NULL DEFAULT '{}',
    usage_json TEXT,
    total_tokens INTEGER NOT NULL DEFAULT 0,
    duration_ms INTEGER,
    system_prompt_chars INTEGER NOT NULL DEFAULT 0,
    aborted INTEGER NOT NULL DEFAULT 0,
    error TEXT
);

CREATE INDEX IF NOT EXISTS idx_traces_session ON run_traces(session_key, timestamp);
CREATE INDEX IF NOT EXISTS idx_traces_timestamp ON run_traces(timestamp);
CREATE INDEX IF NOT EXISTS idx_traces_baseline ON run_traces(is_baseline);

CREATE TABLE IF NOT EXISTS trace_arms (
    trace_id TEXT NOT NULL REFERENCES run_traces(trace_id),
    position INTEGER NOT NULL,
    arm_id TEXT NOT NULL,
    included INTEGER NOT NULL,
    referenced INTEGER NOT NULL,
    token_cost INTEGER NOT NULL,
    PRIMARY KEY (trace_id, position)
);

CREATE INDEX IF NOT EXISTS idx_trace_arms_arm ON trace_arms(arm_id);
"""

_TRACE_COLUMNS = (
    "trace_id, run_id, session_id, session_key, timestamp, provider, model, channel, "
    "is_baseline, context_json, usage_json, total_tokens, duration_ms, "
    "system_prompt_chars, aborted, error"
)


# ---------------------------------------------------------------------------
# Aggregate shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TraceSummary:
    trace_count: int = 0
    arm_count: int = 0  # distinct arms seen across all traces
    total_tokens: int = 0
    avg_tokens: float = 0.0
    min_timestamp: int | None = None
    max_timestamp: int | None = None


@dataclass(frozen=True)
class BaselineComparison:
    baseline_runs: int = 0
    selected_runs: int = 0
    baseline_avg_tokens: float | None = None
    selected_avg_tokens: float | None = None
    token_savings_percent: float | None = None
    baseline_avg_duration: float | None = None
    selected_avg_duration: float | None = None


@dataclass(frozen=True)
class TokenBucket:
    bucket_start: int  # epoch ms, multiple of the bucket width
    trace_count: int
    total_tokens: int
    baseline_tokens: int
    selected_tokens: int


def token_savings_percent(
    baseline_avg: float | None, selected_avg: float | None
) -> float | None:
    """(baseline - selected) / baseline * 100, or None without a baseline."""
    if baseline_avg is None or selected_avg is None or baseline_avg == 0:
        return None
    return (baseline_avg - selected_avg) / baseline_avg * 100


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class PosteriorStore(Protocol):
    """Protocol for posterior and trace persistence."""

    async def get_posterior(self, arm_id: ArmId) -> ArmPosterior | None: ...
    async def save_posterior(self, posterior: ArmPosterior) -> None: ...
    async def load_posteriors(self) -> dict[ArmId, ArmPosterior]: ...
    async def insert_trace(self, trace: RunTrace) -> None: ...
    async def get_trace(self, trace_id: str) -> RunTrace | None: ...
    async def list_traces(
        self, session_key: str | None = None, limit: int = 100, offset: int = 0
    ) -> list[RunTrace]: ...
    async def count_traces(self, session_key: str | None = None) -> int: ...
    async def summary(self) -> TraceSummary: ...
    async def baseline_comparison(self) -> BaselineComparison: ...
    async def token_series(self, bucket_ms: int) -> list[TokenBucket]: ...
    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# SQLite backend
# ---------------------------------------------------------------------------


class SqlitePosteriorStore:
    """ACID posterior and trace storage with aiosqlite.

    Every database failure surfaces as StoreError. Writes are bounded by
    write_timeout_s and a timeout surfaces as StoreTimeoutError. The
    connection is opened lazily on first use.
    """

    def __init__(
        self,
        path: str | Path,
        busy_timeout_ms: int = 3000,
        write_timeout_s: float = 5.0,
    ) -> None:
        self._path = Path(path).expanduser()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout_ms = busy_timeout_ms
        self._write_timeout_s = write_timeout_s
        self._conn: aiosqlite.Connection | None = None
        self._connect_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def __aenter__(self) -> SqlitePosteriorStore:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _ensure_connection(self) -> aiosqlite.Connection:
        if self._conn is not None:
            return self._conn
        async with self._connect_lock:
            # Another caller may have connected while we waited
            if self._conn is not None:
                return self._conn
            conn = await aiosqlite.connect(
                str(self._path), timeout=self._busy_timeout_ms / 1000
            )
            try:
                conn.row_factory = aiosqlite.Row
                await conn.execute("PRAGMA journal_mode = WAL")
                await conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
                await conn.executescript(_SCHEMA)
                await conn.commit()
            except aiosqlite.Error:
                await conn.close()
                raise
            self._conn = conn
            return conn

    async def _read(
        self, operation: str, fn: Callable[[aiosqlite.Connection], Awaitable[T]]
    ) -> T:
        try:
            conn = await self._ensure_connection()
            return await fn(conn)
        except aiosqlite.Error as exc:
            raise StoreError(operation, str(exc)) from exc

    async def _write(
        self, operation: str, fn: Callable[[aiosqlite.Connection], Awaitable[None]]
    ) -> None:
        try:
            conn = await self._ensure_connection()
        except aiosqlite.Error as exc:
            raise StoreError(operation, str(exc)) from exc

        async def _txn() -> None:
            await fn(conn)
            await conn.commit()

        try:
            await asyncio.wait_for(_txn(), timeout=self._write_timeout_s)
        except TimeoutError as exc:
            await self._rollback(conn, operation)
            raise StoreTimeoutError(operation, self._write_timeout_s) from exc
        except aiosqlite.Error as exc:
            await self._rollback(conn, operation)
            raise StoreError(operation, str(exc)) from exc

    async def _rollback(self, conn: aiosqlite.Connection, operation: str) -> None:
        try:
            await conn.rollback()
        except aiosqlite.Error:
            get_logger(__name__).warning(
                "store.rollback.failed", operation=operation, exc_info=True
            )

    # -- Posteriors ---------------------------------------------------------

    async def get_posterior(self, arm_id: ArmId) -> ArmPosterior | None:
        async def _q(conn: aiosqlite.Connection) -> ArmPosterior | None:
            async with conn.execute(
                "SELECT arm_id, alpha, beta, pulls, last_updated "
                "FROM arm_posteriors WHERE arm_id = ?",
                (arm_id,),
            ) as cursor:
                row = await cursor.fetchone()
            return _row_to_posterior(row) if row is not None else None

        return await self._read("get_posterior", _q)

    @traced("store.save_posterior")
    async def save_posterior(self, posterior: ArmPosterior) -> None:
        async def _q(conn: aiosqlite.Connection) -> None:
            await conn.execute(
                "INSERT OR REPLACE INTO arm_posteriors "
                "(arm_id, alpha, beta, pulls, last_updated) VALUES (?, ?, ?, ?, ?)",
                (
                    posterior.arm_id,
                    posterior.alpha,
                    posterior.beta,
                    posterior.pulls,
                    posterior.last_updated,
                ),
            )

        await self._write("save_posterior", _q)

    @traced("store.load_posteriors")
    async def load_posteriors(self) -> dict[ArmId, ArmPosterior]:
        async def _q(conn: aiosqlite.Connection) -> dict[ArmId, ArmPosterior]:
            async with conn.execute(
                "SELECT arm_id, alpha, beta, pulls, last_updated FROM arm_posteriors"
            ) as cursor:
                rows = await cursor.fetchall()
            return {row["arm_id"]: _row_to_posterior(row) for row in rows}

        return await self._read("load_posteriors", _q)

    # -- Traces -------------------------------------------------------------

    @traced("store.insert_trace")
    async def insert_trace(self, trace: RunTrace) -> None:
        """Append a trace. A trace_id that already exists is rejected."""

        async def _q(conn: aiosqlite.Connection) -> None:
            await conn.execute(
                f"INSERT INTO run_traces ({_TRACE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    trace.trace_id,
                    trace.run_id,
                    trace.session_id,
                    trace.session_key,
                    trace.timestamp,
                    trace.provider,
                    trace.model,
                    trace.channel,
                    int(trace.is_baseline),
                    json.dumps(trace.context, default=str),
                    json.dumps(trace.usage.to_dict()),
                    trace.usage.total,
                    trace.duration_ms,
                    trace.system_prompt_chars,
                    int(trace.aborted),
                    trace.error,
                ),
            )
            await conn.executemany(
                "INSERT INTO trace_arms "
                "(trace_id, position, arm_id, included, referenced, token_cost) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (
                        trace.trace_id,
                        i,
                        arm.arm_id,
                        int(arm.included),
                        int(arm.referenced),
                        arm.token_cost,
                    )
                    for i, arm in enumerate(trace.arms)
                ],
            )

        await self._write("insert_trace", _q)

    async def get_trace(self, trace_id: str) -> RunTrace | None:
        async def _q(conn: aiosqlite.Connection) -> RunTrace | None:
            async with conn.execute(
                f"SELECT {_TRACE_COLUMNS} FROM run_traces WHERE trace_id = ?", (trace_id,)
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            arms = await _load_trace_arms(conn, [trace_id])
            return _row_to_trace(row, arms.get(trace_id, ()))

        return await self._read("get_trace", _q)

    async def list_traces(
        self, session_key: str | None = None, limit: int = 100, offset: int = 0
    ) -> list[RunTrace]:
        """Newest first, optionally filtered by session key."""
        sql = f"SELECT {_TRACE_COLUMNS} FROM run_traces"
        params: list[Any] = []
        if session_key is not None:
            sql += " WHERE session_key = ?"
            params.append(session_key)
        sql += " ORDER BY timestamp DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([max(limit, 0), max(offset, 0)])

        async def _q(conn: aiosqlite.Connection) -> list[RunTrace]:
            async with conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
            arms = await _load_trace_arms(conn, [row["trace_id"] for row in rows])
            return [_row_to_trace(row, arms.get(row["trace_id"], ())) for row in rows]

        return await self._read("list_traces", _q)

    async def count_traces(self, session_key: str | None = None) -> int:
        sql = "SELECT COUNT(*) FROM run_traces"
        params: tuple[Any, ...] = ()
        if session_key is not None:
            sql += " WHERE session_key = ?"
            params = (session_key,)

        async def _q(conn: aiosqlite.Connection) -> int:
            async with conn.execute(sql, params) as cursor:
                row = await cursor.fetchone()
            return int(row[0]) if row is not None else 0

        return await self._read("count_traces", _q)

    # -- Aggregations -------------------------------------------------------

    async def summary(self) -> TraceSummary:
        async def _q(conn: aiosqlite.Connection) -> TraceSummary:
            async with conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(total_tokens), 0), AVG(total_tokens), "
                "MIN(timestamp), MAX(timestamp) FROM run_traces"
            ) as cursor:
                row = await cursor.fetchone()
            async with conn.execute(
                "SELECT COUNT(DISTINCT arm_id) FROM trace_arms"
            ) as cursor:
                arm_row = await cursor.fetchone()
            return TraceSummary(
                trace_count=int(row[0]),
                arm_count=int(arm_row[0]) if arm_row is not None else 0,
                total_tokens=int(row[1]),
                avg_tokens=float(row[2]) if row[2] is not None else 0.0,
                min_timestamp=row[3],
                max_timestamp=row[4],
            )

        return await self._read("summary", _q)

    async def baseline_comparison(self) -> BaselineComparison:
        async def _q(conn: aiosqlite.Connection) -> BaselineComparison:
            async with conn.execute(
                "SELECT is_baseline, COUNT(*), AVG(total_tokens), AVG(duration_ms) "
                "FROM run_traces GROUP BY is_baseline"
            ) as cursor:
                rows = await cursor.fetchall()
            groups = {bool(row[0]): row for row in rows}
            base = groups.get(True)
            sel = groups.get(False)
            baseline_avg = float(base[2]) if base is not None and base[2] is not None else None
            selected_avg = float(sel[2]) if sel is not None and sel[2] is not None else None
            return BaselineComparison(
                baseline_runs=int(base[1]) if base is not None else 0,
                selected_runs=int(sel[1]) if sel is not None else 0,
                baseline_avg_tokens=baseline_avg,
                selected_avg_tokens=selected_avg,
                token_savings_percent=token_savings_percent(baseline_avg, selected_avg),
                baseline_avg_duration=base[3] if base is not None else None,
                selected_avg_duration=sel[3] if sel is not None else None,
            )

        return await self._read("baseline_comparison", _q)

    async def token_series(self, bucket_ms: int) -> list[TokenBucket]:
        """Token usage grouped into fixed-width time buckets, oldest first."""
        if bucket_ms <= 0:
            raise ValueError(f"bucket_ms must be positive, got {bucket_ms}")

        async def _q(conn: aiosqlite.Connection) -> list[TokenBucket]:
            async with conn.execute(
                "SELECT (timestamp / ?) * ? AS bucket_start, COUNT(*), "
                "COALESCE(SUM(total_tokens), 0), "
                "COALESCE(SUM(CASE WHEN is_baseline = 1 THEN total_tokens ELSE 0 END), 0), "
                "COALESCE(SUM(CASE WHEN is_baseline = 0 THEN total_tokens ELSE 0 END), 0) "
                "FROM run_traces GROUP BY bucket_start ORDER BY bucket_start",
                (int(bucket_ms), int(bucket_ms)),
            ) as cursor:
                rows = await cursor.fetchall()
            return [
                TokenBucket(
                    bucket_start=int(row[0]),
                    trace_count=int(row[1]),
                    total_tokens=int(row[2]),
                    baseline_tokens=int(row[3]),
                    selected_tokens=int(row[4]),
                )
                for row in rows
            ]

        return await self._read("token_series", _q)

    async def close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _row_to_posterior(row: aiosqlite.Row) -> ArmPosterior:
    return ArmPosterior(
        arm_id=row["arm_id"],
        alpha=row["alpha"],
        beta=row["beta"],
        pulls=row["pulls"],
        last_updated=row["last_updated"],
    )


async def _load_trace_arms(
    conn: aiosqlite.Connection, trace_ids: list[str]
) -> dict[str, tuple[ArmOutcome, ...]]:
    if not trace_ids:
        return {}
    placeholders = ",".join("?" for _ in trace_ids)
    async with conn.execute(
        "SELECT trace_id, arm_id, included, referenced, token_cost FROM trace_arms "
        f"WHERE trace_id IN ({placeholders}) ORDER BY trace_id, position",
        trace_ids,
    ) as cursor:
        rows = await cursor.fetchall()
    grouped: dict[str, list[ArmOutcome]] = {}
    for row in rows:
        grouped.setdefault(row["trace_id"], []).append(
            ArmOutcome(
                arm_id=row["arm_id"],
                included=bool(row["included"]),
                referenced=bool(row["referenced"]),
                token_cost=row["token_cost"],
            )
        )
    return {tid: tuple(arms) for tid, arms in grouped.items()}


def _row_to_trace(row: aiosqlite.Row, arms: tuple[ArmOutcome, ...]) -> RunTrace:
    usage_json = row["usage_json"]
    return RunTrace(
        trace_id=row["trace_id"],
        run_id=row["run_id"],
        session_id=row["session_id"],
        session_key=row["session_key"],
        timestamp=row["timestamp"],
        provider=row["provider"],
        model=row["model"],
        channel=row["channel"],
        is_baseline=bool(row["is_baseline"]),
        context=json.loads(row["context_json"] or "{}"),
        arms=arms,
        usage=TokenUsage.from_dict(json.loads(usage_json) if usage_json else None),
        duration_ms=row["duration_ms"],
        system_prompt_chars=row["system_prompt_chars"],
        aborted=bool(row["aborted"]),
        error=row["error"],
    )
