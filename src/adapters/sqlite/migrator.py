import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DOWN_MARKER = "-- Down"


class MigrationError(RuntimeError):
    """A migration script failed; the database is left at the previous version."""


@dataclass(frozen=True)
class Migration:
    filename: str
    up_sql: str

    @classmethod
    def from_file(cls, path: Path) -> "Migration":
        # Only the part above "-- Down" runs forward
        content = path.read_text()
        up_sql, _, _ = content.partition(DOWN_MARKER)
        return cls(filename=path.name, up_sql=up_sql)


class SQLiteMigrator:
    """Applies migrations/*.sql in filename order, once each."""

    def __init__(self, db_path: str, migrations_dir: str):
        self.db_path = db_path
        self.migrations_dir = Path(migrations_dir)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                filename TEXT UNIQUE NOT NULL,
                applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );
        """)
        return conn

    def _applied(self, conn: sqlite3.Connection) -> set[str]:
        return {row[0] for row in conn.execute("SELECT filename FROM _migrations")}

    def _discover(self) -> list[Path]:
        return sorted(self.migrations_dir.glob("*.sql"))

    def pending(self) -> list[str]:
        """Migration files not yet applied, in apply order."""
        conn = self._connect()
        try:
            applied = self._applied(conn)
        finally:
            conn.close()
        return [p.name for p in self._discover() if p.name not in applied]

    def run_migrations(self) -> list[str]:
        """Apply all pending migrations and return the filenames applied."""
        conn = self._connect()
        try:
            applied = self._applied(conn)
            pending = [
                Migration.from_file(p) for p in self._discover() if p.name not in applied
            ]
            for migration in pending:
                logger.info("Applying migration: %s", migration.filename)
                self._apply(conn, migration)
        finally:
            conn.close()

        if pending:
            logger.info("Applied %d migration(s) to %s", len(pending), self.db_path)
        else:
            logger.debug("Schema at %s is up to date", self.db_path)
        return [m.filename for m in pending]

    def _apply(self, conn: sqlite3.Connection, migration: Migration) -> None:
        try:
            conn.executescript(migration.up_sql)
            conn.execute(
                "INSERT INTO _migrations (filename) VALUES (?)", (migration.filename,)
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise MigrationError(f"Migration {migration.filename} failed: {e}") from e
