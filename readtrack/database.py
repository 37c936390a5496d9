"""PostgreSQL-backed preference store."""
import asyncio
import psycopg2
from psycopg2 import pool
from typing import Optional
import logging

from readtrack.storage import PreferenceStore

logger = logging.getLogger(__name__)


class PostgresPreferenceStore(PreferenceStore):
    """Durable preference store on a PostgreSQL connection pool.

    psycopg2 is blocking, so each operation runs in a worker thread.
    Writes are last-writer-wins per key.
    """

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 5):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        self.connection_pool = psycopg2.pool.SimpleConnectionPool(
            min_conn,
            max_conn,
            connection_string
        )

        if self.connection_pool:
            logger.info("Database connection pool created successfully")
        else:
            raise Exception("Failed to create connection pool")

    def init_schema(self):
        """Create the preferences table if it doesn't exist."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS preferences (
                        pref_key VARCHAR(255) PRIMARY KEY,
                        pref_value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
                logger.info("Database schema initialized successfully")

        finally:
            self.connection_pool.putconn(conn)

    def _read_sync(self, key: str) -> Optional[str]:
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT pref_value FROM preferences WHERE pref_key = %s",
                    (key,)
                )
                row = cur.fetchone()
                return row[0] if row else None
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Failed to read {key}: {e}")
            return None
        finally:
            self.connection_pool.putconn(conn)

    def _write_sync(self, key: str, value: str) -> bool:
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO preferences (pref_key, pref_value, updated_at)
                    VALUES (%s, %s, CURRENT_TIMESTAMP)
                    ON CONFLICT (pref_key) DO UPDATE SET
                        pref_value = EXCLUDED.pref_value,
                        updated_at = CURRENT_TIMESTAMP
                """, (key, value))
                conn.commit()
                return True
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Failed to write {key}: {e}")
            return False
        finally:
            self.connection_pool.putconn(conn)

    def _delete_sync(self, key: str) -> int:
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM preferences WHERE pref_key = %s", (key,))
                deleted = cur.rowcount
                conn.commit()
                return deleted
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Failed to delete {key}: {e}")
            return 0
        finally:
            self.connection_pool.putconn(conn)

    async def _read(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read_sync, key)

    async def _write(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write_sync, key, value)

    async def _delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
