# Copyright (c) 2025 Trae AI. All rights reserved.

from typing import NamedTuple, Optional
from shelfkeeper.infrastructure.db.repository import UserRepository


class Identity(NamedTuple):
    user_id: int
    username: str
    is_admin: bool


class HeaderAuthenticator:
    """
    Trusts a username set by an authenticating reverse proxy. Returns None for
    requests without the header or for unknown users.
    """

    def __init__(self, user_repo: UserRepository, header: str = "X-Remote-User"):
        self.user_repo = user_repo
        self.header = header

    def authenticate(self, request) -> Optional[Identity]:
        username = (request.headers.get(self.header) or "").strip()
        if not username:
            return None
        user = self.user_repo.get_by_username(username)
        if user is None:
            return None
        return Identity(user.id, user.username, user.is_admin)
