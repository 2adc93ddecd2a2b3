"""
Entry-point annotations and the function schema compiler.

An ``AnnotatedFunction`` pairs a Python callable with the metadata the model
needs to call it: a name, a description and an *ordered* list of
``ArgumentAnnotation`` objects. The order matters: it is the order in which
the model's name-keyed arguments are passed positionally to the callable.

Typical usage::

    def get_weather(city, units):
        ...

    fn = AnnotatedFunction(
        name="get_weather",
        description="Current weather for a city.",
        argument_annotations=[
            ArgumentAnnotation("city", required=True, schema={"type": "string"}),
            ArgumentAnnotation("units", schema={"type": "string", "enum": ["celsius", "fahrenheit"]}),
        ],
        implementation=get_weather,
    )
    compile_function(fn).to_dict()
"""

from __future__ import annotations

import inspect
import logging
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Callable, get_type_hints

logger = logging.getLogger(__name__)

# Python annotation -> JSON schema type
_JSON_TYPES: dict[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    dict: "object",
}


@dataclass
class ArgumentAnnotation:
    """Describes one argument of an entry point.

    Attributes:
        name: Argument name as the model will see it.
        required: Whether the model must supply the argument.
        schema: JSON-schema fragment forwarded verbatim as the property
            definition, e.g. ``{"type": "string", "description": "City name"}``.
    """

    name: str
    required: bool = False
    schema: dict[str, Any] = field(default_factory=dict)


@dataclass
class FunctionSchema:
    """Declarative description of one function, as sent to the service."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the ``functions`` request format."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class AnnotatedFunction:
    """A callable exposed to the model as an invocable function.

    Attributes:
        name: Function name, unique within a registry.
        description: Human-readable description shown to the model.
        argument_annotations: Ordered argument metadata. Defines both the
            schema properties and the positional invocation order.
        implementation: Sync or async callable taking one positional value
            per annotation.

    Raises:
        ValueError: On an empty name, duplicate argument names, or an
            implementation that cannot accept one positional argument per
            annotation.
    """

    name: str
    description: str
    argument_annotations: list[ArgumentAnnotation]
    implementation: Callable[..., Any]

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("AnnotatedFunction name must be a non-empty string.")
        self.argument_annotations = list(self.argument_annotations)
        names = [a.name for a in self.argument_annotations]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate argument names in {self.name!r}: {names}")
        self._check_arity()

    def _check_arity(self) -> None:
        try:
            signature = inspect.signature(self.implementation)
        except (TypeError, ValueError):
            # Some builtins expose no signature; arity is checked at call time.
            return
        try:
            signature.bind(*([None] * len(self.argument_annotations)))
        except TypeError as exc:
            raise ValueError(
                f"Implementation of {self.name!r} cannot accept "
                f"{len(self.argument_annotations)} positional argument(s): {exc}"
            ) from exc

    @classmethod
    def from_callable(
        cls,
        func: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
    ) -> AnnotatedFunction:
        """Build an ``AnnotatedFunction`` from a Python callable's signature.

        Parameters without a default are required. Types come from the type
        hints (unknown or missing hints map to ``"string"``), and the
        description defaults to the docstring.

        Args:
            func: The function or bound method to expose.
            name: Optional name override (defaults to ``func.__name__``).
            description: Optional description override.
        """
        fn_name = name or func.__name__
        if description is None:
            doc = inspect.getdoc(func)
            description = doc.strip() if doc else f"Execute {fn_name}"

        try:
            type_hints = get_type_hints(func)
        except Exception:
            logger.debug("Could not resolve type hints for %r", fn_name, exc_info=True)
            type_hints = {}

        annotations: list[ArgumentAnnotation] = []
        for param_name, param in inspect.signature(func).parameters.items():
            if param.kind not in (
                inspect.Parameter.POSITIONAL_ONLY,
                inspect.Parameter.POSITIONAL_OR_KEYWORD,
            ):
                continue
            json_type = _json_type(type_hints.get(param_name, str))
            annotations.append(
                ArgumentAnnotation(
                    name=param_name,
                    required=param.default is inspect.Parameter.empty,
                    schema={"type": json_type, "description": f"The {param_name} parameter"},
                )
            )

        return cls(
            name=fn_name,
            description=description,
            argument_annotations=annotations,
            implementation=func,
        )


def _json_type(annotation: Any) -> str:
    """Map a Python type annotation to a JSON schema type name."""
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        members = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(members) == 1:
            return _json_type(members[0])
        return "string"
    if origin is not None:
        annotation = origin
    return _JSON_TYPES.get(annotation, "string")


def compile_function(fn: AnnotatedFunction) -> FunctionSchema:
    """Compile one ``AnnotatedFunction`` into its ``FunctionSchema``.

    Properties are keyed by annotation name in annotation order; ``required``
    lists exactly the annotations flagged as required, in the same order.
    """
    properties = {a.name: dict(a.schema) for a in fn.argument_annotations}
    required = [a.name for a in fn.argument_annotations if a.required]
    return FunctionSchema(
        name=fn.name,
        description=fn.description,
        parameters={"type": "object", "properties": properties, "required": required},
    )


def compile_functions(functions: typing.Iterable[AnnotatedFunction]) -> list[FunctionSchema]:
    """Compile several functions, preserving their order."""
    return [compile_function(fn) for fn in functions]
