import os
import uuid
from typing import Optional

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .config import Settings
from .models import FileRecord


def make_pool(settings: Settings) -> ConnectionPool:
    # libpq variables (PGHOST, PGUSER, PGDATABASE, ...) come from the environment.
    # Opened by the app lifespan, not at import time.
    return ConnectionPool(
        conninfo="",
        kwargs=dict(
            host=os.getenv("PGHOST", "postgres"),
            dbname=os.getenv("PGDATABASE", "postgres"),
            user=os.getenv("PGUSER", "filevault"),
            sslmode=os.getenv("PGSSLMODE", "prefer"),
            sslrootcert=os.getenv("PGSSLROOTCERT"),
            sslcert=os.getenv("PGSSLCERT"),
            sslkey=os.getenv("PGSSLKEY"),
            connect_timeout=5,
        ),
        max_size=settings.db_pool_max,
        timeout=10,
        open=False,
    )


SCHEMA_SQL = """
create table if not exists files (
  id           uuid primary key default gen_random_uuid(),
  user_id      text not null,
  originalname text not null,
  filename     text not null,
  path         text not null unique,
  mimetype     text not null default 'application/octet-stream',
  size         bigint not null,
  created_at   timestamptz not null default now()
);
-- tables created before encryption lack these columns
alter table files add column if not exists iv text;
alter table files add column if not exists auth_tag text;
alter table files add column if not exists is_encrypted boolean not null default false;
create index if not exists files_user_id_idx on files (user_id);
"""

FILE_COLUMNS = "id, user_id, originalname, filename, path, mimetype, size, created_at, iv, auth_tag, is_encrypted"


class FileStore:
    """File metadata in PostgreSQL. Every per-file query is scoped to the owner."""

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    def init_schema(self) -> None:
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
            conn.commit()

    def insert(
        self,
        *,
        user_id: str,
        originalname: str,
        filename: str,
        path: str,
        mimetype: str,
        size: int,
        iv: Optional[str],
        auth_tag: Optional[str],
        is_encrypted: bool,
    ) -> FileRecord:
        with self.pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                insert into files(user_id, originalname, filename, path, mimetype, size, iv, auth_tag, is_encrypted)
                values (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                returning {FILE_COLUMNS}
                """,
                (user_id, originalname, filename, path, mimetype, size, iv, auth_tag, is_encrypted),
            )
            row = cur.fetchone()
            conn.commit()
        return FileRecord(**row)

    def get(self, user_id: str, file_id: uuid.UUID) -> Optional[FileRecord]:
        with self.pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"select {FILE_COLUMNS} from files where id = %s and user_id = %s",
                (file_id, user_id),
            )
            row = cur.fetchone()
        return FileRecord(**row) if row else None

    def rename(self, user_id: str, file_id: uuid.UUID, originalname: str) -> Optional[FileRecord]:
        with self.pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                update files set originalname = %s
                where id = %s and user_id = %s
                returning {FILE_COLUMNS}
                """,
                (originalname, file_id, user_id),
            )
            row = cur.fetchone()
            conn.commit()
        return FileRecord(**row) if row else None

    def delete(self, user_id: str, file_id: uuid.UUID) -> bool:
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute("delete from files where id = %s and user_id = %s", (file_id, user_id))
            deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    # ---------- maintenance (reseal tool) ----------

    def iter_all(self, limit: Optional[int] = None) -> list[FileRecord]:
        sql = f"select {FILE_COLUMNS} from files order by created_at, id"
        params: tuple = ()
        if limit:
            sql += " limit %s"
            params = (limit,)
        with self.pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [FileRecord(**r) for r in rows]

    def update_encryption(self, file_id: uuid.UUID, *, filename: str, path: str, iv: str, auth_tag: str) -> None:
        """Point a record at freshly sealed content stored under a new key."""
        with self.pool.connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                update files set filename = %s, path = %s, iv = %s, auth_tag = %s, is_encrypted = true
                where id = %s
                """,
                (filename, path, iv, auth_tag, file_id),
            )
            conn.commit()
