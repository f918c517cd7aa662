# Copyright (c) 2025 Trae AI. All rights reserved.

import re
from pathlib import Path
from typing import List, Optional, Tuple, Union
from .models import MovieClassification, ShowClassification


SEASON_PATTERNS = [
    re.compile(r"^season[ _]\s*(\d+)\s*$", re.IGNORECASE),  # Season 1, Season_01
    re.compile(r"^s(\d{1,3})$", re.IGNORECASE),  # s01, S1
]


def parse_movie_dir(name: str) -> Tuple[str, Optional[int]]:
    """
    "Inception (2010)" -> ("Inception", 2010). A non-numeric parenthetical
    such as "(Extended Cut)" stays part of the title.
    """
    idx = name.rfind("(")
    if idx != -1:
        year_part = name[idx + 1:].rstrip(")").strip()
        if year_part.isdigit():
            return name[:idx].strip(), int(year_part)
    return name, None


def parse_season_number(name: str) -> Optional[int]:
    for pattern in SEASON_PATTERNS:
        match = pattern.match(name)
        if match:
            return int(match.group(1))
    return None


class Classifier:
    """
    Decides whether a top-level library directory is a movie or a TV show.
    """

    def find_seasons(self, path: Path) -> List[Tuple[int, Path]]:
        seasons = []
        try:
            entries = list(path.iterdir())
        except OSError:
            return seasons

        for entry in entries:
            if not entry.is_dir():
                continue
            number = parse_season_number(entry.name)
            if number is not None:
                seasons.append((number, entry))
        seasons.sort(key=lambda s: (s[0], s[1].name))
        return seasons

    def classify(self, path: Path) -> Union[MovieClassification, ShowClassification]:
        seasons = self.find_seasons(path)
        if seasons:
            return ShowClassification(title=path.name, path=path, seasons=seasons)

        title, year = parse_movie_dir(path.name)
        return MovieClassification(title=title, year=year, path=path)
