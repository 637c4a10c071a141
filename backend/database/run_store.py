"""
Run Store - Persistence layer for workflow run history.

Keeps one row per run and one immutable row per node execution, so the
history panel can show what every node received and produced.
"""

import duckdb
import uuid
import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Dict, List, Any

from config import RUNS_DATABASE_PATH, RUN_HISTORY_LIMIT

logger = logging.getLogger(__name__)

RUN_SCOPES = ('full', 'partial', 'single')
RUN_STATUSES = ('running', 'success', 'failed')


def _dumps(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _loads(raw: Optional[str]) -> Any:
    return json.loads(raw) if raw else None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class _LockedConnection:
    """Connection wrapper that holds the store's write lock until closed."""

    def __init__(self, conn: duckdb.DuckDBPyConnection, lock: threading.Lock):
        self._conn = conn
        self._lock = lock

    def __getattr__(self, name):
        return getattr(self._conn, name)

    def close(self) -> None:
        try:
            self._conn.close()
        finally:
            self._lock.release()


class RunStore:
    """Manages workflow run persistence in DuckDB."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or RUNS_DATABASE_PATH)
        # Serialises writers: concurrent appends would race on the id sequences
        self._write_lock = threading.Lock()
        self._init_database()
        logger.info(f"Run store initialized with database: {self.db_path}")

    def _init_database(self) -> None:
        """Create run tables if not exists."""
        conn = self._get_connection()
        try:
            conn.execute("CREATE SEQUENCE IF NOT EXISTS run_seq")
            conn.execute("CREATE SEQUENCE IF NOT EXISTS node_execution_seq")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_runs (
                    id TEXT PRIMARY KEY,
                    seq BIGINT DEFAULT nextval('run_seq'),
                    workflow_id TEXT NOT NULL,
                    scope TEXT NOT NULL,
                    status TEXT NOT NULL,
                    duration INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS node_executions (
                    id TEXT PRIMARY KEY,
                    seq BIGINT DEFAULT nextval('node_execution_seq'),
                    run_id TEXT NOT NULL,
                    node_id TEXT NOT NULL,
                    node_type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    inputs_json TEXT,
                    outputs_json TEXT,
                    error TEXT,
                    duration INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """
        Get new database connection.

        DuckDB handles concurrency internally, each connection
        should be used from a single thread.
        """
        return duckdb.connect(str(self.db_path), read_only=False)

    def _write_connection(self) -> _LockedConnection:
        """Connection for writes; only one writer at a time per store."""
        self._write_lock.acquire()
        try:
            return _LockedConnection(self._get_connection(), self._write_lock)
        except Exception:
            self._write_lock.release()
            raise

    def create_run(self, workflow_id: str, scope: str, status: str, duration: Optional[int] = None) -> str:
        """
        Create a run record and return its id.

        Args:
            workflow_id: Workflow the run belongs to
            scope: 'full', 'partial' or 'single'
            status: 'running', 'success' or 'failed'
            duration: Total run duration in milliseconds

        Returns:
            run_id: Unique run identifier
        """
        if not workflow_id:
            raise ValueError("workflow_id is required")
        if scope not in RUN_SCOPES:
            raise ValueError(f"Invalid run scope: {scope}")
        if status not in RUN_STATUSES:
            raise ValueError(f"Invalid run status: {status}")

        run_id = str(uuid.uuid4())
        conn = self._write_connection()
        try:
            conn.execute("""
                INSERT INTO workflow_runs (id, workflow_id, scope, status, duration, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (run_id, workflow_id, scope, status, duration, _utcnow()))
            conn.commit()
            logger.info(f"Created run {run_id} for workflow {workflow_id} ({scope}, {status})")
            return run_id
        except Exception as e:
            logger.error(f"Failed to create run: {e}")
            raise
        finally:
            conn.close()

    def append_node_execution(self, run_id: str, record: Dict[str, Any]) -> str:
        """
        Append an immutable node execution record to a run.

        Args:
            run_id: Run identifier
            record: Dict with node_id, node_type, status, inputs, outputs, error, duration

        Returns:
            Id of the new node execution record
        """
        for key in ('node_id', 'node_type', 'status'):
            if not record.get(key):
                raise ValueError(f"Node execution is missing {key}")

        execution_id = str(uuid.uuid4())
        conn = self._write_connection()
        try:
            exists = conn.execute(
                "SELECT 1 FROM workflow_runs WHERE id = ?", (run_id,)
            ).fetchone()
            if not exists:
                raise ValueError(f"Run {run_id} not found")

            conn.execute("""
                INSERT INTO node_executions
                (id, run_id, node_id, node_type, status, inputs_json, outputs_json, error, duration, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                execution_id,
                run_id,
                record['node_id'],
                record['node_type'],
                record['status'],
                _dumps(record.get('inputs')),
                _dumps(record.get('outputs')),
                record.get('error'),
                record.get('duration'),
                _utcnow(),
            ))
            conn.commit()
            return execution_id
        except Exception as e:
            logger.error(f"Failed to append node execution to run {run_id}: {e}")
            raise
        finally:
            conn.close()

    def _node_executions(self, conn: duckdb.DuckDBPyConnection, run_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        grouped: Dict[str, List[Dict[str, Any]]] = {run_id: [] for run_id in run_ids}
        if not run_ids:
            return grouped

        placeholders = ', '.join('?' for _ in run_ids)
        rows = conn.execute(f"""
            SELECT id, run_id, node_id, node_type, status, inputs_json, outputs_json,
                   error, duration, created_at
            FROM node_executions
            WHERE run_id IN ({placeholders})
            ORDER BY seq ASC
        """, run_ids).fetchall()

        for row in rows:
            grouped[row[1]].append({
                'id': row[0],
                'run_id': row[1],
                'node_id': row[2],
                'node_type': row[3],
                'status': row[4],
                'inputs': _loads(row[5]),
                'outputs': _loads(row[6]),
                'error': row[7],
                'duration': row[8],
                'created_at': str(row[9])
            })
        return grouped

    @staticmethod
    def _run_row(row) -> Dict[str, Any]:
        return {
            'id': row[0],
            'workflow_id': row[1],
            'scope': row[2],
            'status': row[3],
            'duration': row[4],
            'created_at': str(row[5]),
        }

    def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        """
        Get run by ID with its node executions.

        Args:
            run_id: Run identifier

        Returns:
            Run dict or None if not found
        """
        conn = self._get_connection()
        try:
            row = conn.execute("""
                SELECT id, workflow_id, scope, status, duration, created_at
                FROM workflow_runs WHERE id = ?
            """, (run_id,)).fetchone()

            if not row:
                return None

            run = self._run_row(row)
            run['node_executions'] = self._node_executions(conn, [run_id])[run_id]
            return run
        except Exception as e:
            logger.error(f"Failed to get run {run_id}: {e}")
            return None
        finally:
            conn.close()

    def list_runs(self, workflow_id: str, limit: int = RUN_HISTORY_LIMIT) -> List[Dict[str, Any]]:
        """
        List runs of a workflow, most recent first.

        Args:
            workflow_id: Workflow identifier
            limit: Maximum number of runs returned (capped at RUN_HISTORY_LIMIT)

        Returns:
            List of run dicts, each with its node executions
        """
        limit = max(1, min(int(limit), RUN_HISTORY_LIMIT))
        conn = self._get_connection()
        try:
            rows = conn.execute("""
                SELECT id, workflow_id, scope, status, duration, created_at
                FROM workflow_runs
                WHERE workflow_id = ?
                ORDER BY seq DESC
                LIMIT ?
            """, (workflow_id, limit)).fetchall()

            runs = [self._run_row(row) for row in rows]
            executions = self._node_executions(conn, [run['id'] for run in runs])
            for run in runs:
                run['node_executions'] = executions[run['id']]
            return runs
        except Exception as e:
            logger.error(f"Failed to list runs for workflow {workflow_id}: {e}")
            return []
        finally:
            conn.close()

    def update_run_status(self, run_id: str, status: str, duration: Optional[int] = None) -> bool:
        """
        Update the status (and optionally duration) of a run.

        Returns:
            True if updated successfully
        """
        if status not in RUN_STATUSES:
            raise ValueError(f"Invalid run status: {status}")

        updates = ["status = ?"]
        params: List[Any] = [status]
        if duration is not None:
            updates.append("duration = ?")
            params.append(duration)
        params.append(run_id)

        conn = self._write_connection()
        try:
            conn.execute(f"UPDATE workflow_runs SET {', '.join(updates)} WHERE id = ?", params)
            conn.commit()
            return True
        except Exception as e:
            logger.error(f"Failed to update run {run_id}: {e}")
            return False
        finally:
            conn.close()

    def delete_run(self, run_id: str) -> bool:
        """
        Delete a run and its node executions.

        Returns:
            True if deleted successfully
        """
        conn = self._write_connection()
        try:
            conn.execute("DELETE FROM node_executions WHERE run_id = ?", (run_id,))
            conn.execute("DELETE FROM workflow_runs WHERE id = ?", (run_id,))
            conn.commit()
            logger.info(f"Deleted run {run_id}")
            return True
        except Exception as e:
            logger.error(f"Failed to delete run {run_id}: {e}")
            return False
        finally:
            conn.close()

    def cleanup_old_runs(self, days: int = 30) -> int:
        """
        Delete runs (and their node executions) older than ``days``.

        Returns:
            Number of runs deleted
        """
        conn = self._write_connection()
        try:
            old_ids = [row[0] for row in conn.execute("""
                SELECT id FROM workflow_runs
                WHERE created_at < ?
            """, (_utcnow() - timedelta(days=days),)).fetchall()]

            for run_id in old_ids:
                conn.execute("DELETE FROM node_executions WHERE run_id = ?", (run_id,))
                conn.execute("DELETE FROM workflow_runs WHERE id = ?", (run_id,))
            conn.commit()
            logger.info(f"Cleaned up {len(old_ids)} old runs (older than {days} days)")
            return len(old_ids)
        except Exception as e:
            logger.error(f"Failed to cleanup old runs: {e}")
            return 0
        finally:
            conn.close()
