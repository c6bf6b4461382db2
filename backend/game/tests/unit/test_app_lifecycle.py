"""Tests for game server app lifecycle (DB ownership and shutdown)."""

from starlette.testclient import TestClient

from game.server.app import create_app
from game.server.settings import GameServerSettings
from shared.db import Database, SqliteRecordStore


class TestOwnedDbShutdown:
    def test_shutdown_closes_owned_db(self, tmp_path):
        """When the app opens its own database, shutdown closes it."""
        settings = GameServerSettings(database_path=str(tmp_path / "owned.db"))
        app = create_app(settings=settings)

        with TestClient(app):
            db = app.state.lobby._store._db
            assert db.connection is not None

        assert db._conn is None

    def test_shutdown_leaves_injected_store_open(self, tmp_path):
        db = Database(tmp_path / "shared.db")
        db.connect()
        settings = GameServerSettings(database_path=str(tmp_path / "unused.db"))
        app = create_app(settings=settings, store=SqliteRecordStore(db))

        with TestClient(app):
            pass

        assert db._conn is not None
        db.close()
