from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text

import app.main as main_module
from app.config import settings
from app.db.migration_check import (
    assert_db_is_up_to_date,
    get_alembic_head_revision,
    get_current_db_revision,
    maybe_create_schema,
)
from app.db.session import SessionLocal
from app.main import app
from app.models.order import OrderStatus
from app.services.order_store import SqlOrderStore


@pytest.fixture
def sqlite_engine(tmp_path: Path):
    db_path = tmp_path / "migration-check.db"
    engine = create_engine(f"sqlite+pysqlite:///{db_path}")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def startup_settings():
    original_engine = main_module.engine
    original = {
        "app_mode": settings.app_mode,
        "testing": settings.testing,
        "order_store_backend": settings.order_store_backend,
        "auto_create_schema": settings.auto_create_schema,
        "require_migrations": settings.require_migrations,
    }
    try:
        yield settings
    finally:
        main_module.engine = original_engine
        for key, value in original.items():
            setattr(settings, key, value)


def _stamp_head(engine) -> str:
    head = get_alembic_head_revision()
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)"))
        connection.execute(
            text("INSERT INTO alembic_version (version_num) VALUES (:rev)"), {"rev": head}
        )
    return head


def _table_exists(engine, name: str) -> bool:
    with engine.begin() as connection:
        found = connection.execute(
            text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
            {"name": name},
        ).scalar_one_or_none()
    return found == name


def test_assert_db_is_up_to_date_fails_when_alembic_version_missing(sqlite_engine):
    with pytest.raises(RuntimeError, match="Database schema not up to date"):
        assert_db_is_up_to_date(sqlite_engine)


def test_assert_db_is_up_to_date_passes_at_head(sqlite_engine):
    head = _stamp_head(sqlite_engine)

    assert get_current_db_revision(sqlite_engine) == head
    assert_db_is_up_to_date(sqlite_engine)


def test_maybe_create_schema_creates_tables_when_enabled(sqlite_engine, startup_settings):
    startup_settings.auto_create_schema = True
    startup_settings.app_mode = "demo"

    assert maybe_create_schema(sqlite_engine) is True

    assert _table_exists(sqlite_engine, "orders")
    assert _table_exists(sqlite_engine, "order_events")


def test_maybe_create_schema_refuses_production(sqlite_engine, startup_settings):
    startup_settings.auto_create_schema = True
    startup_settings.app_mode = "production"

    with pytest.raises(RuntimeError, match="AUTO_CREATE_SCHEMA"):
        maybe_create_schema(sqlite_engine)


def test_app_startup_fails_fast_when_revision_missing(sqlite_engine, startup_settings):
    main_module.engine = sqlite_engine
    startup_settings.app_mode = "production"
    startup_settings.order_store_backend = "db"
    startup_settings.auto_create_schema = False
    startup_settings.require_migrations = True

    with pytest.raises(RuntimeError, match="Database schema not up to date"):
        with TestClient(app):
            pass


def test_app_startup_passes_when_db_at_head(sqlite_engine, startup_settings):
    _stamp_head(sqlite_engine)
    main_module.engine = sqlite_engine
    startup_settings.app_mode = "production"
    startup_settings.order_store_backend = "db"
    startup_settings.auto_create_schema = False
    startup_settings.require_migrations = True

    with TestClient(app):
        pass


def test_app_startup_in_demo_mode_creates_schema_and_seeds(sqlite_engine, startup_settings):
    main_module.engine = sqlite_engine
    startup_settings.app_mode = "demo"
    startup_settings.order_store_backend = "db"
    startup_settings.auto_create_schema = True
    startup_settings.require_migrations = False

    with TestClient(app):
        pass

    assert _table_exists(sqlite_engine, "orders")
    ready = SqlOrderStore(SessionLocal).list_by_status(OrderStatus.READY)
    assert {order.id for order in ready} == {"ord-demo-1", "ord-demo-2"}


def test_head_revision_adds_order_type():
    assert get_alembic_head_revision() == "20261018_0002"
