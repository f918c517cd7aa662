# Copyright (c) 2025 Trae AI. All rights reserved.

import queue
import shutil
import threading
import pytest
from unittest.mock import MagicMock, patch
from watchdog.events import DirCreatedEvent, DirDeletedEvent, DirMovedEvent, FileCreatedEvent
from shelfkeeper.core.models import MediaStatus
from shelfkeeper.server.watcher import CREATED, REMOVED, LibraryEventHandler, LibraryWatcher
from tests.conftest import make_media_dir


@pytest.fixture
def watcher(config, scan_service, catalog, resolver):
    return LibraryWatcher(config, scan_service, catalog, resolver)


def test_handler_queues_directory_events(tmp_path):
    events = queue.Queue()
    handler = LibraryEventHandler(events)

    handler.on_created(DirCreatedEvent(str(tmp_path / "New")))
    handler.on_created(FileCreatedEvent(str(tmp_path / "loose.mkv")))
    handler.on_deleted(DirDeletedEvent(str(tmp_path / "Old")))
    handler.on_moved(DirMovedEvent(str(tmp_path / "A"), str(tmp_path / "B")))

    queued = [events.get_nowait() for _ in range(events.qsize())]
    assert queued == [
        (CREATED, tmp_path / "New"),
        (REMOVED, tmp_path / "Old"),
        (REMOVED, tmp_path / "A"),
        (CREATED, tmp_path / "B"),
    ]


def test_created_directory_is_catalogued(watcher, movies_root, catalog):
    path = make_media_dir(movies_root / "Heat (1995)")

    watcher.handle_event((CREATED, path))

    assert catalog.media.get_by_path(path).status == MediaStatus.ACTIVE


def test_created_outside_root_level_is_ignored(watcher, movies_root, catalog):
    nested = make_media_dir(movies_root / "Heat (1995)" / "Extras")
    assert watcher.handle_created(nested) is None
    assert catalog.media.list_all() == []


def test_removed_show_marks_all_seasons_gone(watcher, scan_service, tv_root, catalog):
    make_media_dir(tv_root / "Show" / "Season 1")
    make_media_dir(tv_root / "Show" / "Season 2")
    scan_service.scan_directory(tv_root)

    shutil.rmtree(tv_root / "Show")
    marked = watcher.handle_removed(tv_root / "Show")

    assert marked == 2
    assert all(i.status == MediaStatus.GONE for i in catalog.media.list_all())


def test_removal_by_own_move_is_ignored(watcher, movie, resolver, catalog):
    # Mid-move: the directory already sits in trash, the status write has not happened yet.
    trash_copy = resolver.trash_location(movie.path)
    trash_copy.parent.mkdir(parents=True)
    movie.fs_path.rename(trash_copy)

    assert watcher.handle_removed(movie.fs_path) == 0
    assert catalog.media.get(movie.id).status == MediaStatus.ACTIVE


def test_removal_of_trashed_item_is_ignored(watcher, trash_service, movie, users, catalog):
    for user_id in users:
        trash_service.mark(movie.id, user_id)

    assert watcher.handle_removed(movie.fs_path) == 0
    assert catalog.media.get(movie.id).status == MediaStatus.TRASHED


@patch("shelfkeeper.server.watcher.Observer")
def test_start_watches_roots_non_recursively(mock_observer_cls, watcher, movies_root, tv_root):
    observer = MagicMock()
    mock_observer_cls.return_value = observer

    watcher.start()
    try:
        scheduled = [c.args[1] for c in observer.schedule.call_args_list]
        assert scheduled == [str(movies_root), str(tv_root)]
        assert all(c.kwargs["recursive"] is False for c in observer.schedule.call_args_list)
        observer.start.assert_called_once()
        assert watcher.worker_thread.is_alive()
    finally:
        watcher.stop()

    observer.stop.assert_called_once()
    assert not watcher.worker_thread.is_alive()


@patch("shelfkeeper.server.watcher.Observer")
def test_consumer_survives_handler_errors(mock_observer_cls, watcher, movies_root):
    watcher.handle_created = MagicMock(side_effect=[RuntimeError("boom"), None])

    watcher.start()
    try:
        watcher.events.put((CREATED, movies_root / "A"))
        watcher.events.put((CREATED, movies_root / "B"))
        watcher.events.join()
    finally:
        watcher.stop()

    assert watcher.handle_created.call_count == 2


def test_full_queue_blocks_observer_without_losing_events(tmp_path):
    events = queue.Queue(maxsize=1)
    handler = LibraryEventHandler(events)
    handler.on_created(DirCreatedEvent(str(tmp_path / "First")))

    producer = threading.Thread(target=handler.on_created, args=(DirCreatedEvent(str(tmp_path / "Second")),))
    producer.start()
    producer.join(timeout=0.3)
    assert producer.is_alive()

    assert events.get() == (CREATED, tmp_path / "First")
    producer.join(timeout=5)
    assert not producer.is_alive()
    assert events.get_nowait() == (CREATED, tmp_path / "Second")
    assert events.empty()


def test_watcher_queue_is_bounded(config, scan_service, catalog, resolver):
    watcher = LibraryWatcher(config, scan_service, catalog, resolver, queue_size=1)
    assert watcher.events.maxsize == 1
    assert watcher.handler.events is watcher.events
