"""Backtest result repositories, with run_id tracking.

Every repository follows the same lifecycle: ``create_run`` when a run
starts, then exactly one of ``complete_run`` or ``fail_run``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import asyncpg

from core.models import BacktestConfig

from backtest.stats import BacktestResult

logger = logging.getLogger(__name__)

STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class ResultRepository(Protocol):
    """Protocol for backtest result persistence."""

    async def create_run(self, run_id: str, config: BacktestConfig) -> None: ...

    async def complete_run(self, run_id: str, result: BacktestResult) -> None: ...

    async def fail_run(self, run_id: str, error: str) -> None: ...


@dataclass
class RunRecord:
    run_id: str
    config: BacktestConfig
    created_at: datetime
    status: str = STATUS_RUNNING
    result: BacktestResult | None = None
    error: str | None = None


class InMemoryResultRepository:
    """Keeps run records in a dict. Used by tests and ad-hoc runs."""

    def __init__(self) -> None:
        self.runs: dict[str, RunRecord] = {}

    async def create_run(self, run_id: str, config: BacktestConfig) -> None:
        self.runs[run_id] = RunRecord(
            run_id=run_id, config=config, created_at=datetime.now(timezone.utc)
        )

    async def complete_run(self, run_id: str, result: BacktestResult) -> None:
        record = self.runs[run_id]
        record.status = STATUS_COMPLETED
        record.result = result

    async def fail_run(self, run_id: str, error: str) -> None:
        record = self.runs[run_id]
        record.status = STATUS_FAILED
        record.error = error

    def get(self, run_id: str) -> RunRecord | None:
        return self.runs.get(run_id)


class JsonFileResultRepository:
    """One ``<run_id>.json`` file per run under ``results_dir``."""

    def __init__(self, results_dir: Path | str):
        self.results_dir = Path(results_dir)

    def _path(self, run_id: str) -> Path:
        return self.results_dir / f"{run_id}.json"

    def _write(self, run_id: str, payload: dict) -> None:
        self.results_dir.mkdir(parents=True, exist_ok=True)
        with self._path(run_id).open("w") as f:
            json.dump(payload, f, indent=2, default=str)

    async def create_run(self, run_id: str, config: BacktestConfig) -> None:
        self._write(
            run_id,
            {
                "runId": run_id,
                "status": STATUS_RUNNING,
                "strategyConfig": config.model_dump(mode="json", by_alias=True),
            },
        )

    async def complete_run(self, run_id: str, result: BacktestResult) -> None:
        payload = {"runId": run_id, "status": STATUS_COMPLETED}
        payload.update(result.to_json_dict())
        self._write(run_id, payload)
        logger.info(f"Result saved to {self._path(run_id)}")

    async def fail_run(self, run_id: str, error: str) -> None:
        path = self._path(run_id)
        payload: dict = {}
        if path.exists():
            with path.open() as f:
                payload = json.load(f)
        payload.update({"runId": run_id, "status": STATUS_FAILED, "error": error})
        self._write(run_id, payload)

    def load(self, run_id: str) -> dict:
        with self._path(run_id).open() as f:
            return json.load(f)


class PostgresResultRepository:
    """Persist backtest runs, trades and equity curves in PostgreSQL."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def create_run(self, run_id: str, config: BacktestConfig) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                """INSERT INTO backtest_runs (id, strategy_config, status)
                   VALUES ($1, $2::jsonb, 'running')""",
                run_id,
                config.model_dump_json(by_alias=True),
            )

    async def complete_run(self, run_id: str, result: BacktestResult) -> None:
        """Store trades and the equity curve, then mark the run completed."""
        trade_rows = [
            (
                run_id,
                seq,
                t.timestamp,
                t.symbol,
                t.action.value,
                t.quantity,
                t.price,
                t.value,
                t.cost,
                t.realized_pnl,
            )
            for seq, t in enumerate(result.trades)
        ]
        equity_rows = [(run_id, p.timestamp, p.value) for p in result.equity_curve]

        async with self._pool.acquire() as conn:
            async with conn.transaction():
                if trade_rows:
                    await conn.executemany(
                        """INSERT INTO backtest_trades
                           (run_id, seq, timestamp, symbol, action, quantity,
                            price, value, cost, realized_pnl)
                           VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10)""",
                        trade_rows,
                    )
                if equity_rows:
                    await conn.executemany(
                        """INSERT INTO backtest_equity (run_id, timestamp, value)
                           VALUES ($1, $2, $3)""",
                        equity_rows,
                    )
                await conn.execute(
                    """UPDATE backtest_runs SET
                        performance=$2::jsonb, executed_at=$3, execution_time=$4,
                        status='completed'
                       WHERE id=$1""",
                    run_id,
                    result.performance.model_dump_json(by_alias=True),
                    result.executed_at,
                    result.execution_time,
                )

    async def fail_run(self, run_id: str, error: str) -> None:
        """Mark a run as failed."""
        async with self._pool.acquire() as conn:
            await conn.execute(
                "UPDATE backtest_runs SET status='failed', error=$2 WHERE id=$1",
                run_id,
                error,
            )
