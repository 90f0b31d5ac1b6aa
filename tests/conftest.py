"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest


@pytest.fixture
def rust_project(tmp_path: Path):
    """Factory: write a small Rust project and return its root.

    Usage: ``root = rust_project({"src/main.rs": "fn main() {}"}, deps=["serde"])``
    """

    def _make(files: dict[str, str], deps: list[str] | None = None) -> Path:
        root = tmp_path / "proj"
        root.mkdir(exist_ok=True)
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(content))
        if deps is not None:
            lines = ['[package]', 'name = "proj"', 'version = "0.1.0"', "", "[dependencies]"]
            lines += [f'{d} = "1"' for d in deps]
            (root / "Cargo.toml").write_text("\n".join(lines) + "\n")
        return root

    return _make


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for cache files."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir
