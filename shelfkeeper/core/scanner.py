# Copyright (c) 2025 Trae AI. All rights reserved.

import os
from pathlib import Path
from typing import List


class Scanner:
    """
    Lists the candidate media directories of a library root and measures them.
    """

    def __init__(self, blacklist: List[str] = None):
        self.blacklist = set(blacklist) if blacklist else {"#recycle", "@eaDir", ".DS_Store"}

    def list_children(self, root_path: Path) -> List[Path]:
        """
        Immediate child directories of a root. Raises OSError if the root is unreadable.
        """
        children = []
        with os.scandir(root_path) as entries:
            for entry in entries:
                if entry.name in self.blacklist or entry.name.startswith("."):
                    continue
                try:
                    is_dir = entry.is_dir(follow_symlinks=False)
                except OSError:
                    continue
                if is_dir:
                    children.append(Path(entry.path))
        children.sort()
        return children

    def dir_size(self, path: Path) -> int:
        total = 0
        for root, dirs, files in os.walk(path):
            for file in files:
                file_path = os.path.join(root, file)
                try:
                    if os.path.islink(file_path):
                        continue
                    total += os.stat(file_path).st_size
                except OSError:
                    continue
        return total
