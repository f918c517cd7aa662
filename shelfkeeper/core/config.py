# Copyright (c) 2025 Trae AI. All rights reserved.

import yaml
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, field_validator


class Config(BaseModel):
    library_roots: List[Path]
    database_path: Path
    grace_period_days: int = 7
    reconcile_interval_minutes: int = 60
    dry_run: bool = False
    server_port: int = 5000
    server_host: str = "0.0.0.0"
    watch_enabled: bool = True
    session_ttl_hours: int = 720
    auth_header: str = "X-Remote-User"
    initial_admin_user: Optional[str] = None
    blacklist: List[str] = ["#recycle", "@eaDir", ".DS_Store"]
    verbose: bool = False

    @field_validator("library_roots")
    @classmethod
    def _roots_have_siblings(cls, roots: List[Path]) -> List[Path]:
        # Trash and permanent dirs live next to each root, so a root needs a parent and a name.
        for root in roots:
            if not root.name or root.parent == root:
                raise ValueError(f"library root {root} has no parent or name to derive sibling directories")
        return roots

    @field_validator("grace_period_days", "reconcile_interval_minutes")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @classmethod
    def load(cls, path: str = "config.yaml") -> "Config":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls(**data)
