"""Tests for file classification and the eligibility filter."""

from __future__ import annotations

import pytest

from coderag.ingest.filetypes import file_extension, file_type, should_index


@pytest.mark.parametrize("path,expected", [
    ("src/a.TS", "ts"),
    ("Makefile", ""),
    ("dir.v2/file", ""),
    ("archive.tar.gz", "gz"),
])
def test_file_extension(path, expected):
    assert file_extension(path) == expected


@pytest.mark.parametrize("path,expected", [
    ("src/main.rs", "code"),
    ("db/schema.sql", "code"),
    ("README.md", "markdown"),
    ("docs/page.mdx", "markdown"),
    ("config.yaml", "config"),
    (".env", "config"),
    ("notes.txt", "text"),
    ("LICENSE", "text"),
])
def test_file_type(path, expected):
    assert file_type(path) == expected


@pytest.mark.parametrize("path", [
    "src/index.ts",
    "README.md",
    "pyproject.toml",
    "notes.txt",
    "deep/nested/dir/app.go",
])
def test_should_index_accepts(path):
    assert should_index(path)


@pytest.mark.parametrize("path", [
    "node_modules/react/index.js",
    "packages/web/node_modules/x/a.ts",
    ".git/config",
    "dist/bundle.js",
    "src/__pycache__/m.py",
    "package-lock.json",
    "frontend/yarn.lock",
    "image.png",
    ".env",
    "",
])
def test_should_index_rejects(path):
    assert not should_index(path)


def test_excluded_name_only_matches_whole_segment():
    assert should_index("src/distance.py")
    assert should_index("builders/make.py")
