"""
Tests for the artifact loader and factory wrapper.
"""

import importlib.util
import marshal

import pytest

from funcompile.compiler import (
    ArchiveResolver,
    CompilationResult,
    CompilationUnit,
    find_factory_method,
)
from funcompile.errors import LoadError
from funcompile.shapes import Shape, Transform, TransformFactory
from funcompile.streams import Stream

# =============================================================================
# Helpers
# =============================================================================


def _compile(compiler, synthesizer, name, shape, code, *type_params, classpath=()):
    unit = synthesizer.synthesize(name, shape, code, *type_params, classpath=classpath)
    result = compiler.compile(unit)
    result.raise_for_failure()
    return unit, result


# =============================================================================
# FactoryLoader Tests
# =============================================================================


class TestFactoryLoader:
    """Tests for FactoryLoader."""

    def test_load_transform(self, compiler, synthesizer, loader):
        unit, result = _compile(compiler, synthesizer, "upper", Shape.TRANSFORM, "lambda v: v.upper()", "str", "str")
        factory = loader.load(result, unit.name, Shape.TRANSFORM)

        assert factory.name == unit.name
        assert factory.shape is Shape.TRANSFORM
        assert factory.target("hello") == "HELLO"
        assert factory("abc") == "ABC"
        assert factory.type_names == ("str", "str")
        assert factory.input_type == "str"
        assert factory.output_type == "str"
        assert factory.data == result.get_bytes(unit.name)
        assert factory.is_stream_wrapping() is False

    def test_factory_method_recorded(self, compiler, synthesizer, loader):
        unit, result = _compile(
            compiler, synthesizer, "foos", Shape.TRANSFORM, "lambda flux: flux", "Stream[str]", "Stream[str]"
        )
        factory = loader.load(result, unit.name, Shape.TRANSFORM)

        method = factory.factory_method
        assert method.name == "get_result"
        assert method.shape is Shape.TRANSFORM
        assert method.type_names == ("funcompile.streams.Stream[str]", "funcompile.streams.Stream[str]")
        assert factory.is_stream_wrapping() is True

    def test_load_producer_and_sink(self, compiler, synthesizer, loader):
        unit, result = _compile(compiler, synthesizer, "answer", Shape.PRODUCER, "lambda: 42", "int")
        producer = loader.load(result, unit.name, Shape.PRODUCER)
        assert producer.target() == 42
        assert producer.input_type is None
        assert producer.output_type == "int"

        unit, result = _compile(compiler, synthesizer, "collect", Shape.SINK, "lambda v: None", "str")
        sink = loader.load(result, unit.name, Shape.SINK)
        assert sink.target("x") is None
        assert sink.input_type == "str"
        assert sink.output_type is None

    def test_classpath_imports_at_load(self, compiler, synthesizer, loader, fat_archive):
        roots = ArchiveResolver().resolve([fat_archive])
        code = "import greetings\\nreturn lambda: greetings.hello();"
        unit, result = _compile(compiler, synthesizer, "greet", Shape.PRODUCER, code, classpath=roots)

        factory = loader.load(result, unit.name, Shape.PRODUCER, roots)
        assert factory.target() == "hello from classes root"

        factory.close()
        assert factory.closed is True
        assert factory.target() == "hello from classes root"

    def test_missing_artifact(self, loader):
        result = CompilationResult.succeeded("pkg.A", {"pkg.A": b""})
        with pytest.raises(LoadError) as exc_info:
            loader.load(result, "pkg.Other", Shape.TRANSFORM)
        assert exc_info.value.artifact_name == "pkg.Other"

    def test_bad_magic_number(self, loader):
        result = CompilationResult.succeeded("pkg.A", {"pkg.A": b"\x00\x00\x00\x00junk"})
        with pytest.raises(LoadError, match="magic number"):
            loader.load(result, "pkg.A", Shape.TRANSFORM)

    def test_entry_point_failure(self, compiler, synthesizer, loader):
        unit, result = _compile(compiler, synthesizer, "boom", Shape.TRANSFORM, "raise RuntimeError('boom');")

        with pytest.raises(LoadError) as exc_info:
            loader.load(result, unit.name, Shape.TRANSFORM)

        assert exc_info.value.artifact_name == unit.name
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_constructor_failure(self, compiler, loader):
        source = (
            "from funcompile.shapes import Transform, TransformFactory\n"
            "\n"
            "class Fragile(TransformFactory):\n"
            "    def __init__(self):\n"
            "        raise ValueError('no')\n"
            "\n"
            "    def get_result(self) -> Transform[str, str]:\n"
            "        return str.upper\n"
        )
        unit = CompilationUnit("pkg.Fragile", source)
        result = compiler.compile(unit)

        with pytest.raises(LoadError, match="ValueError: no"):
            loader.load(result, unit.name, Shape.TRANSFORM)

    def test_shape_mismatch(self, compiler, synthesizer, loader):
        unit, result = _compile(compiler, synthesizer, "upper", Shape.TRANSFORM, "lambda v: v.upper()")
        with pytest.raises(LoadError, match="expected a sink"):
            loader.load(result, unit.name, Shape.SINK)

    def test_non_callable_result(self, compiler, synthesizer, loader):
        unit, result = _compile(compiler, synthesizer, "value", Shape.PRODUCER, "return 42;")
        with pytest.raises(LoadError, match="not a callable"):
            loader.load(result, unit.name, Shape.PRODUCER)

    def test_load_bytes_reads_name_from_artifact(self, compiler, synthesizer, loader):
        unit, result = _compile(compiler, synthesizer, "upper", Shape.TRANSFORM, "lambda v: v.upper()")
        factory = loader.load_bytes(result.get_bytes(unit.name), Shape.TRANSFORM)

        assert factory.name == unit.name
        assert factory.target("a") == "A"

    def test_load_bytes_rejects_garbage(self, loader):
        with pytest.raises(LoadError):
            loader.load_bytes(b"garbage", Shape.TRANSFORM, origin="upper")

    def test_load_bytes_rejects_non_code(self, loader):
        data = importlib.util.MAGIC_NUMBER + marshal.dumps(["not", "code"])
        with pytest.raises(LoadError, match="not a code object"):
            loader.load_bytes(data, Shape.TRANSFORM)


# =============================================================================
# find_factory_method Tests
# =============================================================================


class TestFindFactoryMethod:
    """Tests for find_factory_method()."""

    def test_finds_annotated_entry_point(self):
        class Streams(TransformFactory):
            def get_result(self) -> Transform[Stream[int], Stream[str]]:
                return lambda flux: flux.map(str)

        method = find_factory_method(Streams)
        assert method.type_names == ("funcompile.streams.Stream[int]", "funcompile.streams.Stream[str]")

    def test_ignores_non_shape_return(self):
        class Plain:
            def get_result(self) -> int:
                return 1

        assert find_factory_method(Plain) is None

    def test_missing_entry_point(self):
        class Empty:
            pass

        assert find_factory_method(Empty) is None
