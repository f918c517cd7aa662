# Copyright (c) 2025 Trae AI. All rights reserved.

import shutil
import pytest
from datetime import timedelta
from shelfkeeper.core.errors import FilesystemFailure, InvalidState, NotFound
from shelfkeeper.core.models import MediaStatus, utcnow
from tests.conftest import make_media_dir


def mark_by_all(trash_service, media_id, users):
    view = None
    for user_id in users:
        view = trash_service.mark(media_id, user_id)
    return view


def test_partial_marks_keep_item_active(trash_service, movie, users):
    alice, bob, _ = users

    trash_service.mark(movie.id, alice)
    view = trash_service.mark(movie.id, bob)

    assert view.item.status == MediaStatus.ACTIVE
    assert view.item.trashed_at is None
    assert view.mark_count == 2
    assert view.total_users == 3
    assert view.marked
    assert movie.fs_path.exists()


def test_mark_is_idempotent(trash_service, movie, users):
    trash_service.mark(movie.id, users[0])
    view = trash_service.mark(movie.id, users[0])
    assert view.mark_count == 1


def test_quorum_moves_item_to_trash(trash_service, movie, movies_root, users):
    view = mark_by_all(trash_service, movie.id, users)

    assert view.item.status == MediaStatus.TRASHED
    assert view.item.trashed_at is not None
    assert not movie.fs_path.exists()
    assert (movies_root.parent / "Movies_trash" / "Inception (2010)" / "video.mkv").exists()


def test_unmark_lowers_progress(trash_service, movie, users):
    trash_service.mark(movie.id, users[0])
    view = trash_service.unmark(movie.id, users[0])
    assert view.mark_count == 0
    assert not view.marked


def test_mark_rejects_non_active(trash_service, movie, users):
    mark_by_all(trash_service, movie.id, users)

    with pytest.raises(InvalidState) as exc:
        trash_service.mark(movie.id, users[0])
    assert exc.value.status == "trashed"

    with pytest.raises(InvalidState):
        trash_service.unmark(movie.id, users[0])


def test_unknown_media_is_not_found(trash_service, users):
    with pytest.raises(NotFound):
        trash_service.mark(999, users[0])
    with pytest.raises(NotFound):
        trash_service.rescue(999)


def test_failed_move_leaves_catalog_untouched(trash_service, movie, movies_root, users):
    # Stale copy in trash blocks the move.
    make_media_dir(movies_root.parent / "Movies_trash" / "Inception (2010)")
    alice, bob, carol = users
    trash_service.mark(movie.id, alice)
    trash_service.mark(movie.id, bob)

    with pytest.raises(FilesystemFailure):
        trash_service.mark(movie.id, carol)

    item = trash_service.catalog.media.get(movie.id)
    assert item.status == MediaStatus.ACTIVE
    assert item.trashed_at is None
    assert movie.fs_path.exists()


def test_duplicate_trash_trigger_is_noop(trash_service, movie, users):
    mark_by_all(trash_service, movie.id, users)
    assert trash_service.move_to_trash(movie.id) is False


def test_rescue_restores_and_clears_marks(trash_service, movie, users):
    mark_by_all(trash_service, movie.id, users)

    view = trash_service.rescue(movie.id)

    assert view.item.status == MediaStatus.ACTIVE
    assert view.item.trashed_at is None
    assert view.mark_count == 0
    assert (movie.fs_path / "video.mkv").exists()


def test_rescue_rejects_non_trashed(trash_service, movie):
    with pytest.raises(InvalidState):
        trash_service.rescue(movie.id)


def test_rescue_fails_when_trash_copy_missing(trash_service, movie, movies_root, users):
    mark_by_all(trash_service, movie.id, users)
    shutil.rmtree(movies_root.parent / "Movies_trash" / "Inception (2010)")

    with pytest.raises(FilesystemFailure):
        trash_service.rescue(movie.id)
    assert trash_service.catalog.media.get(movie.id).status == MediaStatus.TRASHED


def test_season_round_trip_keeps_show_structure(trash_service, scan_service, tv_root, catalog, users):
    season_path = make_media_dir(tv_root / "Show" / "Season 1")
    scan_service.scan_directory(tv_root)
    season = catalog.media.get_by_path(season_path)

    mark_by_all(trash_service, season.id, users)

    trash_copy = tv_root.parent / "TV_trash" / "Show" / "Season 1"
    assert trash_copy.is_dir()
    # The emptied show directory must not linger and rescan as a movie.
    assert not (tv_root / "Show").exists()

    trash_service.rescue(season.id)

    assert (season_path / "video.mkv").exists()
    assert not (tv_root.parent / "TV_trash" / "Show").exists()


def test_trashing_one_season_keeps_siblings(trash_service, scan_service, tv_root, catalog, users):
    make_media_dir(tv_root / "Show" / "Season 1")
    make_media_dir(tv_root / "Show" / "Season 2")
    scan_service.scan_directory(tv_root)
    season = catalog.media.get_by_path(tv_root / "Show" / "Season 1")

    mark_by_all(trash_service, season.id, users)

    assert (tv_root / "Show" / "Season 2").is_dir()
    assert catalog.media.get_by_path(tv_root / "Show" / "Season 2").status == MediaStatus.ACTIVE


def test_purge_respects_grace_period(trash_service, movie, movies_root, users):
    mark_by_all(trash_service, movie.id, users)
    trash_copy = movies_root.parent / "Movies_trash" / "Inception (2010)"

    assert trash_service.purge_expired(now=utcnow() + timedelta(days=6)) == 0
    assert trash_copy.exists()

    assert trash_service.purge_expired(now=utcnow() + timedelta(days=8)) == 1
    assert not trash_copy.exists()
    item = trash_service.catalog.media.get(movie.id)
    assert item.status == MediaStatus.GONE
    assert item.trashed_at is None
    assert trash_service.catalog.marks.count(movie.id) == 0


def test_cleanup_missing_trash(trash_service, movie, movies_root, users):
    mark_by_all(trash_service, movie.id, users)
    shutil.rmtree(movies_root.parent / "Movies_trash" / "Inception (2010)")

    assert trash_service.cleanup_missing_trash() == 1
    assert trash_service.catalog.media.get(movie.id).status == MediaStatus.GONE


def test_dry_run_changes_catalog_only(trash_service, movie, movies_root, users, config):
    config.dry_run = True

    view = mark_by_all(trash_service, movie.id, users)

    assert view.item.status == MediaStatus.TRASHED
    assert movie.fs_path.exists()
    assert not (movies_root.parent / "Movies_trash").exists()
    assert trash_service.cleanup_missing_trash() == 0
    assert trash_service.catalog.media.get(movie.id).status == MediaStatus.TRASHED


def test_sweep_quorum_trashes_ready_items(trash_service, movie, catalog, users):
    alice, bob, carol = users
    trash_service.mark(movie.id, alice)
    trash_service.mark(movie.id, bob)
    catalog.users.delete(carol)

    assert trash_service.sweep_quorum() == [movie.id]
    assert catalog.media.get(movie.id).status == MediaStatus.TRASHED
