"""Unit tests for chatpilot.conversation.functions."""

from __future__ import annotations

from typing import Optional

import pytest

from chatpilot.conversation.functions import (
    AnnotatedFunction,
    ArgumentAnnotation,
    FunctionSchema,
    compile_function,
    compile_functions,
)


def _get_weather(city, units):
    return f"{city}:{units}"


def _weather_fn() -> AnnotatedFunction:
    return AnnotatedFunction(
        name="getWeather",
        description="Current weather for a city.",
        argument_annotations=[
            ArgumentAnnotation("city", required=True, schema={"type": "string"}),
            ArgumentAnnotation("units", required=False, schema={"type": "string"}),
        ],
        implementation=_get_weather,
    )


# ---------------------------------------------------------------------------
# compile_function
# ---------------------------------------------------------------------------


class TestCompileFunction:
    def test_required_lists_only_required_annotations(self) -> None:
        schema = compile_function(_weather_fn())
        assert schema.parameters["required"] == ["city"]

    def test_properties_include_all_annotations(self) -> None:
        schema = compile_function(_weather_fn())
        assert schema.parameters["type"] == "object"
        assert list(schema.parameters["properties"]) == ["city", "units"]
        assert schema.parameters["properties"]["city"] == {"type": "string"}

    def test_annotation_schema_forwarded_verbatim(self) -> None:
        fn = AnnotatedFunction(
            name="setUnits",
            description="",
            argument_annotations=[
                ArgumentAnnotation(
                    "units",
                    schema={"type": "string", "enum": ["celsius", "fahrenheit"], "description": "Units"},
                )
            ],
            implementation=lambda units: None,
        )
        props = compile_function(fn).parameters["properties"]
        assert props["units"] == {
            "type": "string",
            "enum": ["celsius", "fahrenheit"],
            "description": "Units",
        }

    def test_required_order_follows_annotations(self) -> None:
        fn = AnnotatedFunction(
            name="f",
            description="",
            argument_annotations=[
                ArgumentAnnotation("b", required=True),
                ArgumentAnnotation("a", required=False),
                ArgumentAnnotation("c", required=True),
            ],
            implementation=lambda b, a, c: None,
        )
        assert compile_function(fn).parameters["required"] == ["b", "c"]

    def test_to_dict(self) -> None:
        assert compile_function(_weather_fn()).to_dict() == {
            "name": "getWeather",
            "description": "Current weather for a city.",
            "parameters": {
                "type": "object",
                "properties": {"city": {"type": "string"}, "units": {"type": "string"}},
                "required": ["city"],
            },
        }

    def test_compile_functions_preserves_order(self) -> None:
        other = AnnotatedFunction("other", "", [], lambda: None)
        schemas = compile_functions([other, _weather_fn()])
        assert [s.name for s in schemas] == ["other", "getWeather"]
        assert all(isinstance(s, FunctionSchema) for s in schemas)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestAnnotatedFunctionValidation:
    def test_empty_name_raises(self) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            AnnotatedFunction("", "desc", [], lambda: None)

    def test_duplicate_argument_names_raise(self) -> None:
        with pytest.raises(ValueError, match="Duplicate argument names"):
            AnnotatedFunction(
                "f",
                "",
                [ArgumentAnnotation("x"), ArgumentAnnotation("x")],
                lambda x, y: None,
            )

    def test_too_few_parameters_raises(self) -> None:
        with pytest.raises(ValueError, match="cannot accept 2 positional"):
            AnnotatedFunction(
                "f",
                "",
                [ArgumentAnnotation("a"), ArgumentAnnotation("b")],
                lambda a: None,
            )

    def test_extra_required_parameter_raises(self) -> None:
        with pytest.raises(ValueError):
            AnnotatedFunction("f", "", [ArgumentAnnotation("a")], lambda a, b: None)

    def test_varargs_implementation_accepted(self) -> None:
        fn = AnnotatedFunction(
            "f", "", [ArgumentAnnotation("a"), ArgumentAnnotation("b")], lambda *args: None
        )
        assert len(fn.argument_annotations) == 2

    def test_defaults_beyond_annotations_accepted(self) -> None:
        fn = AnnotatedFunction("f", "", [ArgumentAnnotation("a")], lambda a, b=1: None)
        assert fn.name == "f"


# ---------------------------------------------------------------------------
# from_callable
# ---------------------------------------------------------------------------


def _search(query: str, limit: int = 10, exact: bool = False, score: Optional[float] = None):
    """Search the catalogue."""
    return []


class TestFromCallable:
    def test_name_and_description_from_function(self) -> None:
        fn = AnnotatedFunction.from_callable(_search)
        assert fn.name == "_search"
        assert fn.description == "Search the catalogue."

    def test_overrides(self) -> None:
        fn = AnnotatedFunction.from_callable(_search, name="search", description="Find items")
        assert fn.name == "search"
        assert fn.description == "Find items"

    def test_annotations_follow_signature_order(self) -> None:
        fn = AnnotatedFunction.from_callable(_search)
        assert [a.name for a in fn.argument_annotations] == ["query", "limit", "exact", "score"]

    def test_required_from_defaults(self) -> None:
        schema = compile_function(AnnotatedFunction.from_callable(_search))
        assert schema.parameters["required"] == ["query"]

    def test_json_types_from_hints(self) -> None:
        props = compile_function(AnnotatedFunction.from_callable(_search)).parameters["properties"]
        assert props["query"]["type"] == "string"
        assert props["limit"]["type"] == "integer"
        assert props["exact"]["type"] == "boolean"
        assert props["score"]["type"] == "number"

    def test_missing_hints_default_to_string(self) -> None:
        fn = AnnotatedFunction.from_callable(_get_weather)
        props = compile_function(fn).parameters["properties"]
        assert props["city"]["type"] == "string"
        assert fn.description == "Execute _get_weather"

    def test_container_hints(self) -> None:
        def tag(items: list[str], meta: dict[str, int]) -> None:
            pass

        props = compile_function(AnnotatedFunction.from_callable(tag)).parameters["properties"]
        assert props["items"]["type"] == "array"
        assert props["meta"]["type"] == "object"

    def test_bound_method_skips_self(self) -> None:
        class Lamp:
            def switch(self, on: bool) -> None:
                """Switch the lamp."""

        fn = AnnotatedFunction.from_callable(Lamp().switch)
        assert [a.name for a in fn.argument_annotations] == ["on"]

    def test_unbound_function_keeps_every_parameter(self) -> None:
        class Lamp:
            def switch(self, on: bool) -> None:
                """Switch the lamp."""

        fn = AnnotatedFunction.from_callable(Lamp.switch)
        assert [a.name for a in fn.argument_annotations] == ["self", "on"]
        assert compile_function(fn).parameters["required"] == ["self", "on"]

    def test_keyword_only_parameters_skipped(self) -> None:
        def f(a: str, *, verbose: bool = False) -> None:
            pass

        fn = AnnotatedFunction.from_callable(f)
        assert [a.name for a in fn.argument_annotations] == ["a"]
