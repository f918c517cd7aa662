# Copyright (c) 2025 Trae AI. All rights reserved.

import pytest
from shelfkeeper.core.classifier import Classifier, parse_movie_dir, parse_season_number
from shelfkeeper.core.models import MovieClassification, ShowClassification
from shelfkeeper.core.scanner import Scanner


@pytest.mark.parametrize("name,expected", [
    ("Inception (2010)", ("Inception", 2010)),
    ("SomeMovie", ("SomeMovie", None)),
    ("Movie (Extended Cut)", ("Movie (Extended Cut)", None)),
    ("Blade Runner (Final Cut) (1982)", ("Blade Runner (Final Cut)", 1982)),
])
def test_parse_movie_dir(name, expected):
    assert parse_movie_dir(name) == expected


@pytest.mark.parametrize("name,expected", [
    ("Season 1", 1),
    ("Season 10", 10),
    ("season_02", 2),
    ("S03", 3),
    ("s1", 1),
    ("Season", None),
    ("Specials", None),
    ("s1000", None),
    ("Sample", None),
])
def test_parse_season_number(name, expected):
    assert parse_season_number(name) == expected


def test_classify_show_with_seasons(tmp_path):
    show = tmp_path / "The Wire"
    (show / "Season 2").mkdir(parents=True)
    (show / "Season 1").mkdir()
    (show / "Extras").mkdir()

    result = Classifier().classify(show)

    assert isinstance(result, ShowClassification)
    assert result.title == "The Wire"
    assert [n for n, _ in result.seasons] == [1, 2]


def test_classify_movie_when_no_season_dirs(tmp_path):
    movie = tmp_path / "Heat (1995)"
    (movie / "Featurettes").mkdir(parents=True)
    (movie / "Season 1.mkv").write_text("not a directory")

    result = Classifier().classify(movie)

    assert isinstance(result, MovieClassification)
    assert result.title == "Heat"
    assert result.year == 1995


def test_scanner_skips_blacklisted_and_hidden(tmp_path):
    for name in ("Movie A", "#recycle", "@eaDir", ".hidden"):
        (tmp_path / name).mkdir()
    (tmp_path / "loose.mkv").write_text("x")

    children = Scanner().list_children(tmp_path)

    assert [c.name for c in children] == ["Movie A"]


def test_dir_size_is_recursive(tmp_path):
    (tmp_path / "a" / "b").mkdir(parents=True)
    (tmp_path / "a" / "one.bin").write_bytes(b"1" * 10)
    (tmp_path / "a" / "b" / "two.bin").write_bytes(b"2" * 32)

    assert Scanner().dir_size(tmp_path / "a") == 42
