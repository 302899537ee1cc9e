"""
Pytest configuration and shared fixtures for kickstart tests.
"""

import shutil
import subprocess
from pathlib import Path

import pytest

TEMPLATE_DIR = Path(__file__).resolve().parents[1] / "templates" / "rust-flake"

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(cwd, *args) -> str:
    """Run git in cwd and return its output."""
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )
    return result.stdout


@pytest.fixture(autouse=True)
def isolated_git(monkeypatch, tmp_path_factory):
    """Keep the user's git configuration out of the tests and provide an identity."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.invalid")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Author")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "author@example.invalid")


@pytest.fixture
def template_repo(tmp_path):
    """
    A clone of the rust-flake template in a directory named `my-project`:
    two commits of template history on `master` and an `origin` remote.
    """
    repo = tmp_path / "my-project"
    shutil.copytree(TEMPLATE_DIR, repo)
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/master")
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", "template: initial layout")
    (repo / "src" / "main.rs").write_text('fn main() {\n    println!("template");\n}\n', encoding="utf-8")
    git(repo, "commit", "-q", "-am", "template: tweak main")
    git(repo, "remote", "add", "origin", "https://example.invalid/template.git")
    return repo


def make_store(root: Path, system: str = "x86_64-linux") -> Path:
    """
    Lay out a DirectoryStore for the default descriptor under root.
    Packages shipping libraries get a `lib` directory.
    """
    layout = {
        "pkg-config": (["pkg-config"], False),
        "gcc": (["gcc", "g++"], True),
        "cargo": (["cargo"], False),
        "rustc": (["rustc", "rustdoc"], True),
        "rustfmt": (["rustfmt"], False),
        "rustPackages.clippy": (["cargo-clippy", "clippy-driver"], False),
        "rust-analyzer": (["rust-analyzer"], False),
        "rustPlatform.rustLibSrc": ([], False),
    }
    for name, (tools, has_lib) in layout.items():
        prefix = root / system / name
        prefix.mkdir(parents=True)
        if tools:
            (prefix / "bin").mkdir()
        for tool in tools:
            exe = prefix / "bin" / tool
            exe.write_text("#!/bin/sh\n", encoding="utf-8")
            exe.chmod(0o755)
        if has_lib:
            (prefix / "lib").mkdir()
            (prefix / "lib" / f"lib{name}.so").write_text("", encoding="utf-8")
    return root


@pytest.fixture
def package_store(tmp_path):
    return make_store(tmp_path / "store")
