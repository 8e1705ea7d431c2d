"""
Tests for classpath resolution.

Tests for:
- ArchiveResolver (directories, plain archives, fat archives, nested libraries)
- ClasspathReader
- ClasspathImporter
"""

import sys

import pytest

from conftest import write_zip, zip_bytes
from funcompile.compiler import (
    ArchiveResolver,
    ClasspathImporter,
    ClasspathReader,
    ClasspathRoot,
    RootKind,
)
from funcompile.errors import ResolutionError

# =============================================================================
# ArchiveResolver Tests
# =============================================================================


class TestArchiveResolver:
    """Tests for ArchiveResolver."""

    def test_directory_passes_through(self, library_dir):
        roots = ArchiveResolver().resolve([library_dir])
        assert roots == [ClasspathRoot(str(library_dir), RootKind.DIRECTORY)]

    def test_plain_archive(self, plain_archive):
        roots = ArchiveResolver().resolve([plain_archive])
        assert roots == [ClasspathRoot(str(plain_archive), RootKind.ARCHIVE)]

    def test_fat_archive_expands_classes(self, fat_archive):
        roots = ArchiveResolver().resolve([str(fat_archive)])

        assert [root.kind for root in roots] == [RootKind.FAT_ARCHIVE, RootKind.NESTED]
        assert roots[1].prefix == "classes/"
        assert roots[1].locator == f"{fat_archive}!classes/"

    def test_nested_libraries_in_listing_order(self, tmp_path):
        archive = write_zip(
            tmp_path / "app.zip",
            {
                "classes/app.py": "",
                "lib/b.zip": zip_bytes({"b.py": ""}),
                "lib/a.whl": zip_bytes({"a.py": ""}),
                "lib/notes.txt": "ignored",
            },
        )
        roots = ArchiveResolver().resolve([archive])

        assert [root.locator for root in roots] == [
            str(archive),
            f"{archive}!classes/",
            f"{archive}!lib/b.zip",
            f"{archive}!lib/a.whl",
        ]

    def test_library_only_fat_archive(self, tmp_path):
        archive = write_zip(tmp_path / "deps.zip", {"lib/util.zip": zip_bytes({"util.py": ""})})
        roots = ArchiveResolver().resolve([archive])

        assert [root.kind for root in roots] == [RootKind.FAT_ARCHIVE, RootKind.NESTED]
        assert roots[1].entry == "lib/util.zip"

    def test_missing_entries_are_skipped(self, tmp_path, library_dir):
        roots = ArchiveResolver().resolve([tmp_path / "missing.zip", library_dir])
        assert [root.location for root in roots] == [str(library_dir)]

    def test_duplicates_resolved_once(self, library_dir):
        roots = ArchiveResolver().resolve([library_dir, str(library_dir)])
        assert len(roots) == 1

    def test_corrupt_archive(self, tmp_path):
        bad = tmp_path / "bad.zip"
        bad.write_bytes(b"this is not a zip archive")

        with pytest.raises(ResolutionError) as exc_info:
            ArchiveResolver().resolve([bad])
        assert exc_info.value.location == str(bad)

    def test_corrupt_nested_archive(self, tmp_path):
        outer = write_zip(tmp_path / "outer.zip", {"lib/broken.zip": b"garbage"})

        with pytest.raises(ResolutionError) as exc_info:
            ArchiveResolver().resolve([outer])
        assert exc_info.value.location == f"{outer}!lib/broken.zip"

    def test_custom_prefixes(self, tmp_path):
        archive = write_zip(
            tmp_path / "boot.zip",
            {
                "BOOT-INF/classes/app.py": "",
                "BOOT-INF/lib/dep.jar": zip_bytes({"dep.py": ""}),
            },
        )
        resolver = ArchiveResolver(classes_prefix="BOOT-INF/classes", lib_prefix="BOOT-INF/lib/")
        roots = resolver.resolve([archive])

        assert [root.locator for root in roots] == [
            str(archive),
            f"{archive}!BOOT-INF/classes/",
            f"{archive}!BOOT-INF/lib/dep.jar",
        ]

    def test_already_resolved_roots_pass_through(self, nested_archive):
        resolver = ArchiveResolver()
        roots = resolver.resolve([nested_archive])
        assert resolver.resolve(roots) == roots

    def test_from_sys_path(self, library_dir, monkeypatch):
        monkeypatch.setattr(sys, "path", [str(library_dir), "", "/does/not/exist"])
        resolver, roots = ArchiveResolver.from_sys_path()

        assert isinstance(resolver, ArchiveResolver)
        assert [root.location for root in roots] == [str(library_dir)]


class TestResolveDependencies:
    """Tests for ArchiveResolver.resolve_dependencies()."""

    def test_file_uri_and_plain_path(self, library_dir, plain_archive):
        roots, messages = ArchiveResolver().resolve_dependencies(
            [library_dir.as_uri(), str(plain_archive)]
        )
        assert [root.location for root in roots] == [str(library_dir), str(plain_archive)]
        assert messages == []

    def test_unrecognized_scheme(self):
        roots, messages = ArchiveResolver().resolve_dependencies(["trouble://com.example:lib:1.0"])

        assert roots == []
        assert len(messages) == 1
        assert messages[0].is_error
        assert messages[0].message == "Unrecognized dependency: trouble://com.example:lib:1.0"


# =============================================================================
# ClasspathReader Tests
# =============================================================================


class TestClasspathReader:
    """Tests for ClasspathReader."""

    def test_find_module_in_directory(self, library_dir):
        roots = ArchiveResolver().resolve([library_dir])
        with ClasspathReader(roots) as reader:
            found = reader.find_module("greetings")

        assert found is not None
        assert found.is_package is False
        assert b"hello from directory" in found.source

    def test_find_package(self, library_dir):
        roots = ArchiveResolver().resolve([library_dir])
        with ClasspathReader(roots) as reader:
            package = reader.find_module("textutil")
            submodule = reader.find_module("textutil.case")

        assert package.is_package is True
        assert package.origin.endswith("textutil/__init__.py")
        assert submodule.is_package is False

    @pytest.mark.parametrize(
        "fixture_name, layout",
        [
            ("plain_archive", "plain archive"),
            ("fat_archive", "classes root"),
            ("nested_archive", "nested library"),
        ],
    )
    def test_archive_layouts(self, request, fixture_name, layout):
        archive = request.getfixturevalue(fixture_name)
        roots = ArchiveResolver().resolve([archive])

        with ClasspathReader(roots) as reader:
            found = reader.find_module("greetings")

        assert found is not None
        assert f"hello from {layout}".encode() in found.source

    def test_first_match_wins(self, library_dir, fat_archive):
        roots = ArchiveResolver().resolve([fat_archive, library_dir])
        with ClasspathReader(roots) as reader:
            found = reader.find_module("greetings")
        assert b"classes root" in found.source

    def test_missing_module(self, plain_archive):
        roots = ArchiveResolver().resolve([plain_archive])
        with ClasspathReader(roots) as reader:
            assert reader.find_module("nowhere") is None

    def test_reopens_after_close(self, nested_archive):
        roots = ArchiveResolver().resolve([nested_archive])
        reader = ClasspathReader(roots)

        assert reader.find_module("greetings") is not None
        reader.close()
        assert reader.find_module("greetings") is not None
        reader.close()

    def test_archive_removed_after_resolution(self, tmp_path):
        archive = write_zip(tmp_path / "gone.zip", {"gone.py": ""})
        roots = ArchiveResolver().resolve([archive])
        archive.unlink()

        with ClasspathReader(roots) as reader, pytest.raises(ResolutionError):
            reader.find_module("gone")


# =============================================================================
# ClasspathImporter Tests
# =============================================================================


class TestClasspathImporter:
    """Tests for ClasspathImporter."""

    def _run(self, importer, source):
        module = importer.new_module("scratch")
        exec(compile(source, "<scratch>", "exec"), module.__dict__)
        return module

    def test_imports_from_classpath(self, nested_archive):
        importer = ClasspathImporter(ArchiveResolver().resolve([nested_archive]))
        module = self._run(importer, "import greetings\nRESULT = greetings.hello()\n")

        assert module.RESULT == "hello from nested library"
        assert "greetings" in importer.modules
        assert "greetings" not in sys.modules
        importer.close()

    def test_package_relative_imports(self, library_dir):
        importer = ClasspathImporter(ArchiveResolver().resolve([library_dir]))
        module = self._run(importer, "from textutil import shout\nRESULT = shout('hi')\n")

        assert module.RESULT == "HI!"
        assert "textutil.case" in importer.modules

    def test_from_import_of_submodule(self, library_dir):
        importer = ClasspathImporter(ArchiveResolver().resolve([library_dir]))
        module = self._run(importer, "from textutil import case\nRESULT = case.shout('a')\n")
        assert module.RESULT == "A!"

    def test_dotted_import_returns_top_level(self, library_dir):
        importer = ClasspathImporter(ArchiveResolver().resolve([library_dir]))
        module = self._run(importer, "import textutil.case\nRESULT = textutil.case.shout('b')\n")
        assert module.RESULT == "B!"

    def test_host_modules_delegate(self):
        importer = ClasspathImporter(())
        module = self._run(importer, "import json\nRESULT = json.dumps([1])\n")

        assert module.RESULT == "[1]"
        assert importer.modules == {}

    def test_host_wins_over_classpath(self, tmp_path):
        base = tmp_path / "shadow"
        base.mkdir()
        (base / "json.py").write_text("SHADOWED = True\n")
        importer = ClasspathImporter(ArchiveResolver().resolve([base]))

        module = self._run(importer, "import json\nRESULT = hasattr(json, 'SHADOWED')\n")

        assert module.RESULT is False
        assert importer.provides("json") is False

    def test_missing_classpath_submodule(self, library_dir):
        importer = ClasspathImporter(ArchiveResolver().resolve([library_dir]))
        with pytest.raises(ModuleNotFoundError):
            self._run(importer, "import textutil.nothing\n")

    def test_failed_module_not_cached(self, tmp_path):
        base = tmp_path / "broken"
        base.mkdir()
        (base / "explode.py").write_text("raise RuntimeError('boom')\n")
        importer = ClasspathImporter(ArchiveResolver().resolve([base]))

        with pytest.raises(RuntimeError, match="boom"):
            self._run(importer, "import explode\n")
        assert "explode" not in importer.modules
