# Copyright (c) 2025 Trae AI. All rights reserved.

import pytest
from pathlib import Path
from shelfkeeper.core.config import Config
from shelfkeeper.core.paths import PathResolver
from shelfkeeper.infrastructure.db.catalog import Catalog
from shelfkeeper.infrastructure.db.database import Database
from shelfkeeper.services.permanent_service import PermanentService
from shelfkeeper.services.reconcile_service import ReconcileService
from shelfkeeper.services.scan_service import ScanService
from shelfkeeper.services.trash_service import TrashService
from shelfkeeper.services.user_service import UserService


def make_media_dir(path: Path, size: int = 100, filename: str = "video.mkv") -> Path:
    path.mkdir(parents=True, exist_ok=True)
    (path / filename).write_bytes(b"x" * size)
    return path


@pytest.fixture
def movies_root(tmp_path):
    root = tmp_path / "library" / "Movies"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def tv_root(tmp_path):
    root = tmp_path / "library" / "TV"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test.db"


@pytest.fixture
def config(movies_root, tv_root, db_path):
    return Config(
        library_roots=[movies_root, tv_root],
        database_path=db_path,
        grace_period_days=7,
    )


@pytest.fixture
def database(db_path):
    return Database(db_path)


@pytest.fixture
def catalog(database):
    return Catalog(database)


@pytest.fixture
def resolver(config):
    return PathResolver(config.library_roots)


@pytest.fixture
def scan_service(config, catalog):
    return ScanService(config, catalog.media)


@pytest.fixture
def trash_service(config, catalog, resolver):
    return TrashService(config, catalog, resolver)


@pytest.fixture
def permanent_service(config, catalog, resolver):
    return PermanentService(config, catalog, resolver)


@pytest.fixture
def user_service(catalog, permanent_service, trash_service):
    return UserService(catalog, permanent_service, trash_service)


@pytest.fixture
def reconcile_service(config, catalog, scan_service, trash_service):
    return ReconcileService(config, catalog, scan_service, trash_service)


@pytest.fixture
def users(catalog):
    """Three users: alice, bob, carol."""
    return [catalog.users.create(name) for name in ("alice", "bob", "carol")]


@pytest.fixture
def movie(movies_root, scan_service, catalog):
    """A scanned movie 'Inception (2010)'; returns its catalog item."""
    path = make_media_dir(movies_root / "Inception (2010)", size=250)
    scan_service.scan_directory(movies_root)
    return catalog.media.get_by_path(path)
