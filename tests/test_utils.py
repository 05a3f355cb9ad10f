"""Tests for shared helper functions."""

from __future__ import annotations

import pytest

from app.utils import (
    build_image_url,
    build_request_signature,
    dedupe_strings,
    extract_year,
    split_names,
)


def test_request_signature_is_independent_of_parameter_order() -> None:
    first = build_request_signature(
        "tmdb", "/discover/movie", {"page": 1, "primary_release_year": 2020}
    )
    second = build_request_signature(
        "tmdb", "discover/movie", {"primary_release_year": 2020, "page": 1}
    )

    assert first == second
    assert first == "tmdb:/discover/movie?page=1&primary_release_year=2020"


def test_request_signature_distinguishes_pages_and_drops_none() -> None:
    page_one = build_request_signature("tmdb", "/movie/popular", {"page": 1})
    page_two = build_request_signature("tmdb", "/movie/popular", {"page": 2})
    bare = build_request_signature("tmdb", "/movie/popular", {"page": None})

    assert page_one != page_two
    assert bare == "tmdb:/movie/popular"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2019-05-01", 2019),
        ("2010-2022", 2010),
        (1999, 1999),
        ("", None),
        (None, None),
        ("unknown", None),
        (42, None),
    ],
)
def test_extract_year(value: object, expected: int | None) -> None:
    assert extract_year(value) == expected


def test_dedupe_strings_preserves_first_spelling() -> None:
    assert dedupe_strings(["Drama", " drama ", "", None, "Crime"]) == ["Drama", "Crime"]


def test_split_names_handles_comma_lists() -> None:
    assert split_names("Drama, Crime,  ,Drama") == ["Drama", "Crime"]
    assert split_names(None) == []


def test_build_image_url_joins_relative_paths() -> None:
    base = "https://image.tmdb.org/t/p/original"

    assert build_image_url("/abc.jpg", base) == f"{base}/abc.jpg"
    assert build_image_url("https://cdn.example.com/x.jpg", base) == (
        "https://cdn.example.com/x.jpg"
    )
    assert build_image_url(None, base) is None
