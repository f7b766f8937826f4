"""Root pytest configuration: run the code blocks in docs/ as tests."""

from os import chdir
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any

from sybil import Sybil
from sybil.parsers.markdown import PythonCodeBlockParser, SkipParser

_DOCS_DIR = Path(__file__).parent / "docs"


def documentation_setup(namespace: dict[str, Any]) -> None:  # noqa: ARG001
    """Run each documentation page from its own scratch directory."""
    directory = Path(TemporaryDirectory().name)
    directory.mkdir(parents=True, exist_ok=True)
    chdir(directory)


pytest_collect_file = Sybil(
    parsers=[
        PythonCodeBlockParser(),
        SkipParser(),
    ],
    path=str(_DOCS_DIR),
    pattern="*.md",
    setup=documentation_setup,
).pytest()
