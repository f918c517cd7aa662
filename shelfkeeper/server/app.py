# Copyright (c) 2025 Trae AI. All rights reserved.

import logging
import sys
from functools import wraps
from typing import Optional
from flask import Flask, g, jsonify, request
from flask_apscheduler import APScheduler
from ..core.config import Config
from ..core.errors import LifecycleError
from ..core.models import MediaStatus, MediaType, MediaView
from ..core.paths import ensure_library_layout
from ..services.library import Library
from .auth import HeaderAuthenticator
from .task_manager import TaskManager
from .watcher import LibraryWatcher


def _view_json(view: MediaView):
    return view.model_dump(mode="json")


class Server:
    def __init__(self, config_path: str = "config.yaml", config: Optional[Config] = None,
                 start_background: bool = True):
        self.config = config or Config.load(config_path)

        logging.basicConfig(
            level=logging.DEBUG if self.config.verbose else logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )
        self.logger = logging.getLogger(__name__)

        self.app = Flask(__name__)
        self.scheduler = APScheduler()
        self.task_manager = TaskManager()

        self.library = Library(self.config)
        self.catalog = self.library.catalog
        self.authenticator = HeaderAuthenticator(self.catalog.users, self.config.auth_header)
        self.watcher = LibraryWatcher(self.config, self.library.scan_service, self.catalog, self.library.resolver)

        if self.config.initial_admin_user:
            self.library.user_service.seed_admin(self.config.initial_admin_user)

        self._setup_error_handlers()
        self._setup_routes()

        if start_background:
            ensure_library_layout(self.library.resolver)
            self.library.scan_service.full_scan()
            self._setup_scheduler()
            if self.config.watch_enabled:
                self.watcher.start()

    def _authenticated(self, admin: bool = False):
        def decorator(view):
            @wraps(view)
            def wrapper(*args, **kwargs):
                identity = self.authenticator.authenticate(request)
                if identity is None:
                    return jsonify({"error": "unauthorized"}), 401
                if admin and not identity.is_admin:
                    return jsonify({"error": "forbidden"}), 403
                g.identity = identity
                return view(*args, **kwargs)
            return wrapper
        return decorator

    def _setup_error_handlers(self):
        @self.app.errorhandler(LifecycleError)
        def handle_lifecycle_error(e: LifecycleError):
            self.logger.error(f"Request failed ({e.kind}): {e}")
            return jsonify({"error": e.kind, "message": str(e)}), e.status_code

    def _setup_routes(self):
        auth = self._authenticated
        trash_service = self.library.trash_service
        permanent_service = self.library.permanent_service

        @self.app.route("/api/media")
        @auth()
        def list_media():
            try:
                media_type = MediaType(request.args.get("type", MediaType.MOVIE.value))
            except ValueError:
                return jsonify({"error": "type must be 'movie' or 'tv_season'"}), 400
            show_marked = request.args.get("show_marked") == "true"
            user_id = g.identity.user_id

            marked_ids = set(self.catalog.marks.media_ids_for_user(user_id))
            total_users = self.catalog.users.count()
            rows = []
            for item in self.catalog.media.list_visible_for_user(media_type, user_id):
                marked = item.id in marked_ids
                if marked and not show_marked:
                    continue
                rows.append(_view_json(MediaView(
                    item=item,
                    mark_count=self.catalog.marks.count(item.id),
                    total_users=total_users,
                    marked=marked,
                    owner_id=user_id if item.status == MediaStatus.PERMANENT else None,
                )))
            return jsonify(rows)

        @self.app.route("/api/media/<int:media_id>/mark", methods=["POST"])
        @auth()
        def mark_media(media_id):
            return jsonify(_view_json(trash_service.mark(media_id, g.identity.user_id)))

        @self.app.route("/api/media/<int:media_id>/mark", methods=["DELETE"])
        @auth()
        def unmark_media(media_id):
            return jsonify(_view_json(trash_service.unmark(media_id, g.identity.user_id)))

        @self.app.route("/api/media/<int:media_id>/persist", methods=["POST"])
        @auth()
        def persist_media(media_id):
            return jsonify(_view_json(permanent_service.persist(media_id, g.identity.user_id)))

        @self.app.route("/api/media/<int:media_id>/persist", methods=["DELETE"])
        @auth()
        def unpersist_media(media_id):
            return jsonify(_view_json(permanent_service.unpersist(media_id, g.identity.user_id)))

        @self.app.route("/api/admin/trash")
        @auth(admin=True)
        def list_trash():
            items = self.catalog.media.list_by_status(MediaStatus.TRASHED)
            return jsonify([item.model_dump(mode="json") for item in items])

        @self.app.route("/api/admin/media/<int:media_id>/rescue", methods=["POST"])
        @auth(admin=True)
        def rescue_media(media_id):
            return jsonify(_view_json(trash_service.rescue(media_id)))

        @self.app.route("/api/admin/scan", methods=["POST"])
        @auth(admin=True)
        def trigger_scan():
            task_id = "full_scan"
            thread = self.task_manager.spawn(
                task_id,
                lambda progress: self.library.scan_service.full_scan(update_progress=progress),
                "Scan complete",
            )
            if thread is None:
                return jsonify({"error": "Scan already in progress"}), 400
            self.logger.info(f"[User Action] {g.identity.username} triggered a full scan")
            return jsonify({"task_id": task_id})

        @self.app.route("/api/admin/reconcile", methods=["POST"])
        @auth(admin=True)
        def trigger_reconcile():
            task_id = "reconcile"
            thread = self.task_manager.spawn(
                task_id, lambda progress: self.library.reconcile_service.run_cycle(), "Reconciliation complete"
            )
            if thread is None:
                return jsonify({"error": "Reconciliation already in progress"}), 400
            return jsonify({"task_id": task_id})

        @self.app.route("/api/status")
        @auth()
        def get_status():
            return jsonify(self.task_manager.get_all_tasks())

        @self.app.route("/api/admin/users", methods=["POST"])
        @auth(admin=True)
        def create_user():
            data = request.get_json(silent=True) or {}
            username = (data.get("username") or "").strip()
            if not username:
                return jsonify({"error": "Username is required"}), 400
            user = self.library.user_service.create_user(username, bool(data.get("is_admin", False)))
            return jsonify(user.model_dump(mode="json")), 201

        @self.app.route("/api/admin/users/<int:user_id>", methods=["DELETE"])
        @auth(admin=True)
        def delete_user(user_id):
            result = self.library.user_service.delete_user(user_id)
            return jsonify(result.model_dump(mode="json"))

        @self.app.route("/api/stats")
        @auth()
        def get_stats():
            media = self.catalog.media
            return jsonify({
                "active": media.count_by_status(MediaStatus.ACTIVE),
                "trashed": media.count_by_status(MediaStatus.TRASHED),
                "permanent": media.count_by_status(MediaStatus.PERMANENT),
                "gone": media.count_by_status(MediaStatus.GONE),
                "active_bytes": media.total_size(MediaStatus.ACTIVE),
                "trashed_bytes": media.total_size(MediaStatus.TRASHED),
                "users": self.catalog.users.count(),
                "dry_run": self.config.dry_run,
            })

    def _setup_scheduler(self):
        self.scheduler.init_app(self.app)
        interval = self.config.reconcile_interval_minutes
        if interval > 0:
            self.scheduler.add_job(
                id="reconcile",
                func=self.library.reconcile_service.run_cycle,
                trigger="interval",
                minutes=interval,
                max_instances=1,
                coalesce=True,
            )
            self.logger.info(f"Reconciliation scheduled every {interval} minute(s)")
        else:
            self.logger.info("Automatic reconciliation disabled (reconcile_interval_minutes = 0)")
        self.scheduler.start()

    def run(self):
        self.app.run(host=self.config.server_host, port=self.config.server_port)


if __name__ == "__main__":
    server = Server()
    server.run()
