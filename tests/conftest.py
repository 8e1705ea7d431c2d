"""
Pytest configuration and fixtures for funcompile tests.
"""

import io
import sys
import zipfile
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from funcompile.compiler import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from funcompile.compiler import FactoryLoader, RuntimeCompiler, SnippetSynthesizer  # noqa: E402
from funcompile.runtime import FunctionRegistry, MemoryFunctionStore  # noqa: E402

GREETINGS_SOURCE = "def hello():\n    return 'hello from {layout}'\n"


def write_zip(path, entries):
    """Write a zip archive; entries maps archive names to str or bytes."""
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return path


def zip_bytes(entries):
    """Build a zip archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def synthesizer():
    return SnippetSynthesizer()


@pytest.fixture
def compiler():
    with RuntimeCompiler() as compiler:
        yield compiler


@pytest.fixture
def loader():
    return FactoryLoader()


@pytest.fixture
def registry():
    """In-memory registry with an empty classpath."""
    with FunctionRegistry(MemoryFunctionStore()) as registry:
        yield registry


@pytest.fixture
def library_dir(tmp_path):
    """Directory holding a plain module and a package."""
    base = tmp_path / "lib-dir"
    (base / "textutil").mkdir(parents=True)
    (base / "greetings.py").write_text(GREETINGS_SOURCE.format(layout="directory"))
    (base / "textutil" / "__init__.py").write_text("from .case import shout\n")
    (base / "textutil" / "case.py").write_text("def shout(v):\n    return v.upper() + '!'\n")
    return base


@pytest.fixture
def plain_archive(tmp_path):
    """Zip archive with modules at its top level."""
    return write_zip(
        tmp_path / "plain.zip",
        {"greetings.py": GREETINGS_SOURCE.format(layout="plain archive")},
    )


@pytest.fixture
def fat_archive(tmp_path):
    """Fat archive with modules under classes/."""
    return write_zip(
        tmp_path / "fat.zip",
        {
            "classes/greetings.py": GREETINGS_SOURCE.format(layout="classes root"),
            "META-INF/MANIFEST.MF": "Manifest-Version: 1.0\n",
        },
    )


@pytest.fixture
def nested_archive(tmp_path):
    """Fat archive whose module lives in lib/inner.zip."""
    inner = zip_bytes({"greetings.py": GREETINGS_SOURCE.format(layout="nested library")})
    return write_zip(
        tmp_path / "outer.zip",
        {
            "classes/app.py": "NAME = 'app'\n",
            "lib/inner.zip": inner,
            "lib/README.txt": "not an archive\n",
        },
    )
