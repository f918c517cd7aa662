# Copyright (c) 2025 Trae AI. All rights reserved.

import shutil
from datetime import timedelta
from unittest.mock import MagicMock
from shelfkeeper.core.models import MediaStatus, utcnow


def trash_movie(trash_service, movie, users):
    for user_id in users:
        trash_service.mark(movie.id, user_id)


def test_cycle_purges_after_grace_period(reconcile_service, trash_service, movie, movies_root, users, catalog):
    trash_movie(trash_service, movie, users)
    trash_copy = movies_root.parent / "Movies_trash" / "Inception (2010)"

    report = reconcile_service.run_cycle(now=utcnow() + timedelta(days=1))
    assert report.purged == 0
    assert trash_copy.exists()

    report = reconcile_service.run_cycle(now=utcnow() + timedelta(days=8))

    assert report.purged == 1
    assert report.errors == {}
    assert not trash_copy.exists()
    assert catalog.media.get(movie.id).status == MediaStatus.GONE


def test_cycle_marks_removed_items_gone(reconcile_service, movie, catalog):
    shutil.rmtree(movie.fs_path)

    report = reconcile_service.run_cycle()

    assert report.marked_gone == 1
    assert catalog.media.get(movie.id).status == MediaStatus.GONE


def test_cycle_cleans_marks_on_gone_items(reconcile_service, trash_service, movie, catalog, users):
    trash_service.mark(movie.id, users[0])
    shutil.rmtree(movie.fs_path)

    report = reconcile_service.run_cycle()

    assert report.marks_removed == 1
    assert catalog.marks.count(movie.id) == 0


def test_cycle_repairs_missing_trash(reconcile_service, trash_service, movie, movies_root, users, catalog):
    trash_movie(trash_service, movie, users)
    shutil.rmtree(movies_root.parent / "Movies_trash" / "Inception (2010)")

    report = reconcile_service.run_cycle()

    assert report.missing_trash == 1
    assert catalog.media.get(movie.id).status == MediaStatus.GONE


def test_failed_step_does_not_stop_cycle(reconcile_service, trash_service, movie, movies_root, users, catalog):
    trash_movie(trash_service, movie, users)
    shutil.rmtree(movies_root.parent / "Movies_trash" / "Inception (2010)")
    reconcile_service.scan_service = MagicMock()
    reconcile_service.scan_service.full_scan.side_effect = RuntimeError("disk on fire")

    report = reconcile_service.run_cycle()

    assert "scan" in report.errors
    assert report.missing_trash == 1
    assert catalog.media.get(movie.id).status == MediaStatus.GONE


def test_cycle_expires_sessions(reconcile_service, catalog, users):
    token = catalog.sessions.create(users[0], ttl_hours=1)

    report = reconcile_service.run_cycle(now=utcnow() + timedelta(hours=2))

    assert report.sessions_expired == 1
    assert catalog.sessions.validate(token) is None
