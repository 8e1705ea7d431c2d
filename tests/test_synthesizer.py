"""
Tests for the snippet synthesizer.

Tests for:
- Wire decoding
- Body normalization and wrapping
- Unit naming
- Type parameters
"""

import ast

import pytest

from funcompile.compiler import SnippetSynthesizer, class_name_for, decode
from funcompile.compiler.synthesizer import normalize
from funcompile.errors import SynthesisError
from funcompile.shapes import Shape

# =============================================================================
# Decoding
# =============================================================================


class TestDecode:
    """Tests for decode()."""

    def test_escaped_newline(self):
        assert decode("a = 1\\nreturn a;") == "a = 1\nreturn a;"

    def test_doubled_quotes(self):
        assert decode('lambda v: ""x"" + v') == 'lambda v: "x" + v'

    def test_plain_text_unchanged(self):
        assert decode("lambda v: v") == "lambda v: v"

    def test_dangling_backslash(self):
        with pytest.raises(SynthesisError, match="dangling backslash"):
            decode("lambda v: v\\")

    def test_escaped_trailing_backslash_allowed(self):
        assert decode("x\\\\") == "x\\\\"


# =============================================================================
# Normalization
# =============================================================================


class TestNormalize:
    """Tests for body normalization."""

    def test_bare_expression_is_wrapped(self):
        body = normalize("lambda v: v", "Transform[str, str]")
        assert body == "return serializable(Transform[str, str], lambda v: v)"

    def test_return_statement_kept(self):
        assert normalize("return lambda v: v", "Transform[Any, Any]") == "return lambda v: v"

    def test_trailing_semicolon_kept(self):
        body = "f = lambda v: v\nreturn f;"
        assert normalize(body, "Transform[Any, Any]") == body

    def test_enclosing_quotes_stripped(self):
        body = normalize('"lambda v: v"', "Transform[Any, Any]")
        assert body == "return serializable(Transform[Any, Any], lambda v: v)"

    def test_only_one_layer_of_quotes_stripped(self):
        body = normalize('""x""', "Producer[str]")
        assert body == 'return serializable(Producer[str], "x")'

    def test_empty_body(self):
        with pytest.raises(SynthesisError, match="empty"):
            normalize('  ""  ', "Producer[Any]")


# =============================================================================
# Naming
# =============================================================================


class TestNaming:
    """Tests for factory class naming."""

    def test_capitalizes_first_letter(self):
        assert class_name_for("foos", Shape.TRANSFORM) == "FoosTransformFactory"

    def test_single_letter_name(self):
        assert class_name_for("x", Shape.SINK) == "XSinkFactory"

    def test_keeps_rest_of_name(self):
        assert class_name_for("wordCount", Shape.PRODUCER) == "WordCountProducerFactory"

    def test_empty_name(self):
        with pytest.raises(SynthesisError, match="empty"):
            class_name_for("", Shape.TRANSFORM)

    def test_invalid_identifier(self):
        with pytest.raises(SynthesisError, match="identifier"):
            class_name_for("my-func", Shape.TRANSFORM)

    def test_qualified_name_uses_package(self):
        synthesizer = SnippetSynthesizer("acme.functions")
        assert synthesizer.qualified_name("upper", Shape.TRANSFORM) == (
            "acme.functions.UpperTransformFactory"
        )

    def test_invalid_package(self):
        with pytest.raises(ValueError):
            SnippetSynthesizer("not a package")


# =============================================================================
# Synthesis
# =============================================================================


class TestSynthesize:
    """Tests for SnippetSynthesizer.synthesize()."""

    def test_unit_name_and_metadata(self, synthesizer):
        unit = synthesizer.synthesize("upper", Shape.TRANSFORM, "lambda v: v.upper()", "str", "str")

        assert unit.name == "funcompile.generated.UpperTransformFactory"
        assert unit.package == "funcompile.generated"
        assert unit.short_name == "UpperTransformFactory"
        assert unit.shape is Shape.TRANSFORM
        assert unit.type_params == ("str", "str")
        assert unit.classpath == ()

    def test_source_is_valid_python(self, synthesizer):
        unit = synthesizer.synthesize("upper", Shape.TRANSFORM, "lambda v: v.upper()", "str", "str")
        tree = ast.parse(unit.source)

        classes = [node for node in tree.body if isinstance(node, ast.ClassDef)]
        assert [node.name for node in classes] == ["UpperTransformFactory"]
        assert "class UpperTransformFactory(TransformFactory):" in unit.source
        assert "def get_result(self) -> Transform[str, str]:" in unit.source
        assert "return serializable(Transform[str, str], lambda v: v.upper())" in unit.source

    def test_missing_type_params_default_to_any(self, synthesizer):
        unit = synthesizer.synthesize("words", Shape.PRODUCER, "lambda: ['a']")
        assert unit.type_params == ("Any",)
        assert "-> Producer[Any]:" in unit.source

    def test_shape_name_accepted(self, synthesizer):
        unit = synthesizer.synthesize("audit", "consumer", "lambda v: None")
        assert unit.shape is Shape.SINK
        assert unit.name.endswith("AuditSinkFactory")

    def test_multiline_body_is_indented(self, synthesizer):
        code = "def shout(v):\\n    return v.upper()\\nreturn shout;"
        unit = synthesizer.synthesize("shout", Shape.TRANSFORM, code)

        assert "        def shout(v):\n            return v.upper()\n        return shout;" in unit.source
        ast.parse(unit.source)

    def test_wrong_type_param_count(self, synthesizer):
        with pytest.raises(SynthesisError, match="takes 2 type parameter"):
            synthesizer.synthesize("upper", Shape.TRANSFORM, "lambda v: v", "str")

    def test_unparseable_type_param(self, synthesizer):
        with pytest.raises(SynthesisError, match="Invalid type parameter"):
            synthesizer.synthesize("upper", Shape.SINK, "lambda v: None", "list[")

    def test_empty_name(self, synthesizer):
        with pytest.raises(SynthesisError):
            synthesizer.synthesize("", Shape.TRANSFORM, "lambda v: v")

    def test_unknown_shape(self, synthesizer):
        with pytest.raises(ValueError, match="Unknown function shape"):
            synthesizer.synthesize("upper", "mapper", "lambda v: v")
