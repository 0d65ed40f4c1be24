from __future__ import annotations

import dataclasses
import enum
import inspect
import numbers
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, ForwardRef, TypeVar, get_origin

from interwire.exceptions import InterWireInvalidRegistrationError

C = TypeVar("C", bound=type[Any])

GENERIC_CONSTRAINTS_ATTRIBUTE = "__generic_constraints__"

_VALUE_TYPES: tuple[type[Any], ...] = (
    numbers.Number,
    str,
    bytes,
    tuple,
    frozenset,
    enum.Enum,
    type(None),
)


class TypeConstraint(ABC):
    """A requirement a closing type argument must meet.

    Declare constraints on a generic implementation with ``where``. They are
    checked together with ``TypeVar`` bounds and constraint lists whenever an
    open definition is closed over concrete arguments.
    """

    @abstractmethod
    def is_satisfied_by(self, argument: Any) -> bool:
        """Return whether ``argument`` meets the constraint."""

    @abstractmethod
    def describe(self) -> str:
        """Return a short human readable form used in diagnostics."""


@dataclass(frozen=True, slots=True)
class BaseClassConstraint(TypeConstraint):
    """The argument must derive from ``base``."""

    base: type[Any]

    def is_satisfied_by(self, argument: Any) -> bool:
        return is_subtype(argument, self.base)

    def describe(self) -> str:
        return f"base class {self.base.__qualname__}"


@dataclass(frozen=True, slots=True)
class InterfaceConstraint(TypeConstraint):
    """The argument must implement ``interface``.

    Protocols are checked nominally, or structurally when they are runtime
    checkable.
    """

    interface: type[Any]

    def is_satisfied_by(self, argument: Any) -> bool:
        return is_subtype(argument, self.interface)

    def describe(self) -> str:
        return f"interface {self.interface.__qualname__}"


@dataclass(frozen=True, slots=True)
class DefaultConstructorConstraint(TypeConstraint):
    """The argument must be a concrete class callable without arguments."""

    def is_satisfied_by(self, argument: Any) -> bool:
        argument_type = origin_or_self(argument)
        if not isinstance(argument_type, type) or inspect.isabstract(argument_type):
            return False
        try:
            signature = inspect.signature(argument_type)
        except (TypeError, ValueError):
            # Builtin classes without introspectable signatures: int(), str(), ...
            return argument_type.__module__ == "builtins"
        return all(
            parameter.default is not inspect.Parameter.empty
            or parameter.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
            for parameter in signature.parameters.values()
        )

    def describe(self) -> str:
        return "a default constructor"


@dataclass(frozen=True, slots=True)
class ValueTypeConstraint(TypeConstraint):
    """The argument must be an immutable value type."""

    def is_satisfied_by(self, argument: Any) -> bool:
        return is_value_type(argument)

    def describe(self) -> str:
        return "a value type"


@dataclass(frozen=True, slots=True)
class ReferenceTypeConstraint(TypeConstraint):
    """The argument must be a class that is not a value type."""

    def is_satisfied_by(self, argument: Any) -> bool:
        return isinstance(origin_or_self(argument), type) and not is_value_type(argument)

    def describe(self) -> str:
        return "a reference type"


def where(typevar: TypeVar, *constraints: TypeConstraint) -> Callable[[C], C]:
    """Declare constraints for one type parameter of a generic class.

    Repeated use on the same class accumulates constraints. Constraints belong
    to the decorated class and are not inherited by subclasses.

    Args:
        typevar: A type parameter of the decorated class.
        *constraints: Constraints the closing argument must satisfy.

    Returns:
        A class decorator returning the class unchanged apart from the stored
        constraints.

    Examples:
        .. code-block:: python

            @where(T, BaseClassConstraint(Entity), DefaultConstructorConstraint())
            class SqlRepository(Repository[T]): ...

    """
    if not isinstance(typevar, TypeVar):
        msg = f"where() expects a TypeVar, got {typevar!r}."
        raise InterWireInvalidRegistrationError(msg)
    if not constraints:
        msg = f"where() requires at least one constraint for TypeVar '{typevar.__name__}'."
        raise InterWireInvalidRegistrationError(msg)
    for constraint in constraints:
        if not isinstance(constraint, TypeConstraint):
            msg = f"Expected a TypeConstraint for TypeVar '{typevar.__name__}', got {constraint!r}."
            raise InterWireInvalidRegistrationError(msg)

    def decorator(cls: C) -> C:
        if typevar not in getattr(cls, "__parameters__", ()):
            msg = f"TypeVar '{typevar.__name__}' is not a type parameter of {cls.__qualname__}."
            raise InterWireInvalidRegistrationError(msg)
        declared = dict(declared_constraints(cls))
        declared[typevar] = (*declared.get(typevar, ()), *constraints)
        setattr(cls, GENERIC_CONSTRAINTS_ATTRIBUTE, declared)
        return cls

    return decorator


def declared_constraints(cls: type[Any]) -> Mapping[TypeVar, tuple[TypeConstraint, ...]]:
    """Return constraints declared with ``where`` directly on ``cls``."""
    return cls.__dict__.get(GENERIC_CONSTRAINTS_ATTRIBUTE, {})


def is_value_type(argument: Any) -> bool:
    argument_type = origin_or_self(argument)
    if not isinstance(argument_type, type):
        return False
    if issubclass(argument_type, _VALUE_TYPES):
        return True
    if dataclasses.is_dataclass(argument_type):
        return bool(argument_type.__dataclass_params__.frozen)  # type: ignore[attr-defined]
    return False


def is_subtype(argument: Any, target: Any) -> bool:
    """Return whether ``argument`` is usable where ``target`` is expected."""
    if target is Any:
        return True
    argument_type = origin_or_self(argument)
    if isinstance(target, ForwardRef):
        return _matches_forward_ref(argument_type, target)
    target_type = origin_or_self(target)
    if isinstance(argument_type, type) and isinstance(target_type, type):
        if target_type in argument_type.__mro__:
            return True
        try:
            return issubclass(argument_type, target_type)
        except TypeError:
            # Protocols that are not runtime checkable only match nominally.
            return False
    return argument == target


def origin_or_self(value: Any) -> Any:
    return get_origin(value) or value


def _matches_forward_ref(argument_type: Any, target: ForwardRef) -> bool:
    if not isinstance(argument_type, type):
        return False
    name = target.__forward_arg__
    return any(name in (base.__name__, base.__qualname__) for base in argument_type.__mro__)
