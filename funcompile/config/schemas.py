"""
Configuration Schemas for funcompile.

Pydantic models for compiler settings and declarative function
definitions.

Definitions file format (JSON):
    {
        "compile": {
            "upper": {
                "lambda": "lambda v: v.upper()",
                "type": "function",
                "inputType": "str",
                "outputType": "str"
            }
        },
        "imports": {
            "words": {
                "location": "https://example.com/functions/words.fun",
                "type": "supplier"
            }
        }
    }
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from funcompile.compiler.classpath import CLASSES_PREFIX, LIB_PREFIX
from funcompile.compiler.synthesizer import DEFAULT_PACKAGE
from funcompile.runtime.stores import DEFAULT_REGISTRY_DIR
from funcompile.shapes import Shape


class CompilerSettings(BaseModel):
    """
    Compiler and registry settings.

    Loaded from FUNCOMPILE_* environment variables by get_settings().
    """

    # Registry
    registry_dir: str = Field(DEFAULT_REGISTRY_DIR, description="Root directory of the file store")

    # Classpath
    classpath: list[str] = Field(default_factory=list, description="Directories and archives to compile against")
    include_sys_path: bool = Field(False, description="Append the interpreter's sys.path to the classpath")
    classes_prefix: str = Field(CLASSES_PREFIX, description="Module root inside fat archives")
    lib_prefix: str = Field(LIB_PREFIX, description="Nested library root inside fat archives")

    # Compiler
    compile_timeout: float | None = Field(30.0, gt=0, description="Seconds a compilation may take")
    generated_package: str = Field(DEFAULT_PACKAGE, description="Package of generated factory classes")
    max_workers: int | None = Field(None, ge=1, description="Compiler thread pool size")

    debug: bool = False

    model_config = ConfigDict(extra="ignore")


class CompileDefinition(BaseModel):
    """A snippet to compile and register."""

    lambda_: str = Field(
        ...,
        validation_alias=AliasChoices("lambda", "lambda_"),
        description="Snippet in wire encoding",
    )
    type: Shape = Field(Shape.TRANSFORM, description="supplier/function/consumer or producer/transform/sink")
    input_type: str | None = Field(
        None,
        validation_alias=AliasChoices("inputType", "input_type"),
        description="Declared input type",
    )
    output_type: str | None = Field(
        None,
        validation_alias=AliasChoices("outputType", "output_type"),
        description="Declared output type",
    )

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    @field_validator("type", mode="before")
    @classmethod
    def _parse_shape(cls, value: object) -> Shape:
        return Shape.parse(value)

    @model_validator(mode="after")
    def _check_types(self) -> CompileDefinition:
        if self.type is Shape.TRANSFORM and (self.input_type is None) != (self.output_type is None):
            raise ValueError("if either input or output type is set, the other is also required")
        return self

    def type_params(self) -> tuple[str, ...]:
        """Type parameters in the order the shape declares them."""
        if self.type is Shape.TRANSFORM:
            if self.input_type is None:
                return ()
            return (self.input_type, self.output_type)
        if self.type is Shape.PRODUCER:
            return (self.output_type,) if self.output_type else ()
        return (self.input_type,) if self.input_type else ()


class ImportDefinition(BaseModel):
    """A precompiled artifact to import."""

    location: str = Field(..., description="Path, file: URI or http(s) URL of the artifact")
    type: Shape = Field(Shape.TRANSFORM, description="supplier/function/consumer or producer/transform/sink")

    model_config = ConfigDict(extra="forbid")

    @field_validator("type", mode="before")
    @classmethod
    def _parse_shape(cls, value: object) -> Shape:
        return Shape.parse(value)


class FunctionDefinitions(BaseModel):
    """Everything a registry should be populated with."""

    compile: dict[str, CompileDefinition] = Field(default_factory=dict)
    imports: dict[str, ImportDefinition] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")
