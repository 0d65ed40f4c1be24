from __future__ import annotations

import inspect
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from inspect import Parameter
from typing import Annotated, Any, get_args, get_origin, get_type_hints

from interwire.exceptions import (
    InterWireInvalidRegistrationError,
    InterWireProviderDependencyInferenceError,
)

_RECEIVER_NAMES = frozenset({"self", "cls"})
_VARIADIC_KINDS = frozenset({Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD})


class Lifetime(Enum):
    """How long a produced instance is reused."""

    TRANSIENT = "transient"
    """Every resolution produces a new instance."""

    SINGLETON = "singleton"
    """The first produced instance is returned for every resolution."""


@dataclass(frozen=True, slots=True)
class ProviderDependency:
    """A required provider parameter and the dependency key that fills it."""

    provides: Any
    parameter: Parameter


@dataclass(slots=True)
class ProviderDependenciesExtractor:
    """Infer the dependencies of constructors and factories from annotations.

    Only required parameters are dependencies. Parameters with defaults and
    ``*args``/``**kwargs`` are left to the callable.
    """

    def extract_from_concrete_type(self, concrete_type: type[Any]) -> list[ProviderDependency]:
        """Return the dependencies of ``concrete_type.__init__``."""
        initializer = concrete_type.__init__
        if initializer is object.__init__:
            return []
        return list(
            self._iter_dependencies(
                initializer,
                provider_name=concrete_type.__qualname__,
                skip_receiver=True,
            ),
        )

    def extract_from_factory(self, factory: Callable[..., Any]) -> list[ProviderDependency]:
        """Return the dependencies of a factory callable."""
        return list(
            self._iter_dependencies(
                factory,
                provider_name=_provider_name(factory),
                skip_receiver=False,
            ),
        )

    def _iter_dependencies(
        self,
        provider: Callable[..., Any],
        *,
        provider_name: str,
        skip_receiver: bool,
    ) -> Iterator[ProviderDependency]:
        parameters = list(inspect.signature(provider).parameters.values())
        if skip_receiver and parameters and parameters[0].name in _RECEIVER_NAMES:
            del parameters[0]

        hints, hints_error = _type_hints(provider)
        for parameter in parameters:
            if parameter.default is not Parameter.empty or parameter.kind in _VARIADIC_KINDS:
                continue
            annotation = hints.get(parameter.name, parameter.annotation)
            if annotation is Parameter.empty or isinstance(annotation, str):
                msg = (
                    f"Unable to infer dependency for required parameter '{parameter.name}' "
                    f"in provider '{provider_name}'. Add a type annotation."
                )
                if hints_error is not None:
                    msg = f"{msg} Original annotation error: {hints_error}"
                raise InterWireProviderDependencyInferenceError(msg) from hints_error
            yield ProviderDependency(provides=unwrap_annotated(annotation), parameter=parameter)


@dataclass(slots=True)
class ProviderReturnTypeExtractor:
    """Infer the dependency key a factory provides from its return annotation."""

    def extract_from_factory(self, factory: Callable[..., Any]) -> Any:
        hints, hints_error = _type_hints(factory)
        return_type = hints.get("return")
        if return_type is None or return_type is type(None):
            msg = (
                f"Unable to infer return type for factory provider '{_provider_name(factory)}'. "
                "Add a return type annotation or pass provides= explicitly."
            )
            if hints_error is not None:
                msg = f"{msg} Original annotation error: {hints_error}"
            raise InterWireInvalidRegistrationError(msg) from hints_error
        return unwrap_annotated(return_type)


def unwrap_annotated(annotation: Any) -> Any:
    """Strip ``Annotated`` metadata, however deeply nested."""
    while get_origin(annotation) is Annotated:
        annotation = get_args(annotation)[0]
    return annotation


def _type_hints(provider: Callable[..., Any]) -> tuple[dict[str, Any], Exception | None]:
    try:
        return get_type_hints(provider, include_extras=True), None
    except (AttributeError, NameError, TypeError) as error:
        return {}, error


def _provider_name(provider: Callable[..., Any]) -> str:
    return getattr(provider, "__qualname__", repr(provider))
