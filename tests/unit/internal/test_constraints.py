from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

import pytest

from interwire.constraints import (
    BaseClassConstraint,
    DefaultConstructorConstraint,
    InterfaceConstraint,
    ReferenceTypeConstraint,
    ValueTypeConstraint,
    declared_constraints,
    is_subtype,
    is_value_type,
    where,
)
from interwire.exceptions import InterWireInvalidRegistrationError

T = TypeVar("T")
U = TypeVar("U")


class _Entity:
    pass


class _Customer(_Entity):
    pass


class _Color(enum.Enum):
    RED = "red"


@dataclass(frozen=True)
class _Money:
    amount: int


@dataclass
class _MutableMoney:
    amount: int


class _Shape(ABC):
    @abstractmethod
    def area(self) -> float: ...


class _Named(Protocol):
    def name(self) -> str: ...


class _NamedCustomer(_Named):
    def name(self) -> str:
        return "customer"


class _WithDefaults:
    def __init__(self, value: int = 0, *args: Any, **kwargs: Any) -> None:
        self.value = value


class _Box(Generic[T, U]):
    pass


class _Sub(_Box[T, U]):
    pass


def test_base_class_constraint() -> None:
    constraint = BaseClassConstraint(_Entity)

    assert constraint.is_satisfied_by(_Customer)
    assert constraint.is_satisfied_by(_Entity)
    assert not constraint.is_satisfied_by(int)
    assert constraint.describe() == "base class _Entity"


def test_interface_constraint_matches_nominal_protocol_implementation() -> None:
    constraint = InterfaceConstraint(_Named)

    assert constraint.is_satisfied_by(_NamedCustomer)
    assert not constraint.is_satisfied_by(_Customer)


def test_default_constructor_constraint() -> None:
    constraint = DefaultConstructorConstraint()

    assert constraint.is_satisfied_by(_Entity)
    assert constraint.is_satisfied_by(_WithDefaults)
    assert constraint.is_satisfied_by(list[int])
    assert not constraint.is_satisfied_by(_Money)
    assert not constraint.is_satisfied_by(_Shape)
    assert not constraint.is_satisfied_by("not a type")


def test_value_and_reference_type_constraints() -> None:
    values = (int, float, bool, str, bytes, tuple, frozenset, _Color, _Money, type(None))
    references = (_Entity, _MutableMoney, list, dict[str, int])

    for value_type in values:
        assert is_value_type(value_type), value_type
        assert ValueTypeConstraint().is_satisfied_by(value_type)
        assert not ReferenceTypeConstraint().is_satisfied_by(value_type)
    for reference_type in references:
        assert not is_value_type(reference_type), reference_type
        assert ReferenceTypeConstraint().is_satisfied_by(reference_type)


def test_is_subtype_handles_any_and_aliases() -> None:
    assert is_subtype(_Customer, Any)
    assert is_subtype(list[int], list)
    assert not is_subtype(list[int], dict)
    assert is_subtype("literal", "literal")


def test_where_stores_and_accumulates_constraints() -> None:
    @where(T, BaseClassConstraint(_Entity))
    @where(T, DefaultConstructorConstraint())
    @where(U, ValueTypeConstraint())
    class _Constrained(_Box[T, U]):
        pass

    declared = declared_constraints(_Constrained)

    assert declared[T] == (DefaultConstructorConstraint(), BaseClassConstraint(_Entity))
    assert declared[U] == (ValueTypeConstraint(),)


def test_where_constraints_are_not_inherited() -> None:
    @where(T, ValueTypeConstraint())
    class _Constrained(_Box[T, U]):
        pass

    class _Child(_Constrained[T, U]):
        pass

    assert declared_constraints(_Child) == {}
    assert declared_constraints(_Sub) == {}


def test_where_rejects_invalid_arguments() -> None:
    with pytest.raises(InterWireInvalidRegistrationError, match="expects a TypeVar"):
        where("T", ValueTypeConstraint())  # type: ignore[arg-type]

    with pytest.raises(InterWireInvalidRegistrationError, match="at least one constraint"):
        where(T)

    with pytest.raises(InterWireInvalidRegistrationError, match="Expected a TypeConstraint"):
        where(T, int)  # type: ignore[arg-type]


def test_where_rejects_foreign_typevar() -> None:
    V = TypeVar("V")

    with pytest.raises(InterWireInvalidRegistrationError, match="is not a type parameter"):
        where(V, ValueTypeConstraint())(_Sub)
