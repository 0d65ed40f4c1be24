from __future__ import annotations

from typing import Generic, Protocol, TypeVar, runtime_checkable

import pytest

from interwire.constraints import (
    DefaultConstructorConstraint,
    InterfaceConstraint,
    ReferenceTypeConstraint,
    ValueTypeConstraint,
    where,
)
from interwire.exceptions import InterWireInvalidGenericTypeArgumentError
from interwire.generic_types import (
    check_constraints,
    contains_typevar,
    generic_definition,
    generic_projections,
    is_closed_generic,
    is_generic_type_definition_of,
    match_open_generic,
    substitute_typevars,
    validate_typevar_arguments,
)

T = TypeVar("T")
K = TypeVar("K")
V = TypeVar("V")
U = TypeVar("U")
EntityT = TypeVar("EntityT", bound="Entity")
NumberT = TypeVar("NumberT", int, float)
T_co = TypeVar("T_co", covariant=True)
T_contra = TypeVar("T_contra", contravariant=True)


class Entity:
    pass


class Order(Entity):
    pass


class Product:
    pass


class NeedsName:
    def __init__(self, name: str) -> None:
        self.name = name


@runtime_checkable
class SupportsClose(Protocol):
    def close(self) -> None: ...


class Connection:
    def close(self) -> None:
        pass


class Repository(Generic[T]):
    pass


class NullRepository(Repository[T]):
    pass


class EntityRepository(Repository[EntityT]):
    pass


class NumberRepository(Repository[NumberT]):
    pass


class Pair(Generic[K, V]):
    pass


class FlippedPair(Pair[V, K], Generic[K, V]):
    pass


class TextKeyedPair(Pair[str, V]):
    pass


class OrderPair(Pair[Order, V]):
    pass


class SamePair(Pair[T, T]):
    pass


class Producer(Generic[T_co, V]):
    pass


class OrderProducer(Producer[Order, V]):
    pass


class Consumer(Generic[T_contra, V]):
    pass


class EntityConsumer(Consumer[Entity, V]):
    pass


class ListRepository(Repository[list[T]]):
    pass


class MiddleRepository(NullRepository[T]):
    pass


class LeafRepository(MiddleRepository[U]):
    pass


class OrderRepository(Repository[Order]):
    pass


@where(T, DefaultConstructorConstraint())
class ConstructingRepository(Repository[T]):
    pass


@where(T, ValueTypeConstraint())
class ValueRepository(Repository[T]):
    pass


@where(T, ReferenceTypeConstraint())
@where(T, InterfaceConstraint(SupportsClose))
class ClosingRepository(Repository[T]):
    pass


def test_match_closes_direct_implementation() -> None:
    result = match_open_generic(Repository[Order], NullRepository)

    assert result.satisfied
    assert result.closed_implementation_type == NullRepository[Order]
    assert result.typevar_map == {T: Order}


def test_match_accepts_subscripted_open_implementation() -> None:
    result = match_open_generic(Repository[Order], NullRepository[T])

    assert result.closed_implementation_type == NullRepository[Order]


def test_match_unifies_reordered_parameters() -> None:
    result = match_open_generic(Pair[int, str], FlippedPair)

    assert result.satisfied
    assert result.closed_implementation_type == FlippedPair[str, int]


def test_match_respects_partial_specialization() -> None:
    assert match_open_generic(Pair[str, int], TextKeyedPair).closed_implementation_type == (
        TextKeyedPair[int]
    )
    assert not match_open_generic(Pair[int, int], TextKeyedPair).satisfied


def test_match_honors_covariant_parameter() -> None:
    result = match_open_generic(Producer[Entity, int], OrderProducer)

    assert result.closed_implementation_type == OrderProducer[int]
    assert not match_open_generic(Producer[Product, int], OrderProducer).satisfied


def test_match_honors_contravariant_parameter() -> None:
    result = match_open_generic(Consumer[Order, int], EntityConsumer)

    assert result.closed_implementation_type == EntityConsumer[int]
    assert not match_open_generic(Consumer[Product, int], EntityConsumer).satisfied


def test_match_keeps_invariant_parameter_exact() -> None:
    assert not match_open_generic(Pair[Entity, int], OrderPair).satisfied


def test_match_requires_consistent_binding_for_repeated_parameter() -> None:
    assert match_open_generic(Pair[int, int], SamePair).closed_implementation_type == SamePair[int]
    assert not match_open_generic(Pair[int, str], SamePair).satisfied


def test_match_unifies_nested_generic_arguments() -> None:
    assert match_open_generic(Repository[list[int]], ListRepository).closed_implementation_type == (
        ListRepository[int]
    )
    assert not match_open_generic(Repository[int], ListRepository).satisfied
    assert not match_open_generic(Repository[set[int]], ListRepository).satisfied


def test_match_walks_indirect_bases() -> None:
    result = match_open_generic(Repository[Order], LeafRepository)

    assert result.closed_implementation_type == LeafRepository[Order]


def test_match_honors_typevar_bound() -> None:
    assert match_open_generic(Repository[Order], EntityRepository).satisfied
    assert not match_open_generic(Repository[Product], EntityRepository).satisfied


def test_match_honors_typevar_constraint_list() -> None:
    assert match_open_generic(Repository[int], NumberRepository).satisfied
    assert match_open_generic(Repository[bool], NumberRepository).satisfied
    assert not match_open_generic(Repository[str], NumberRepository).satisfied


def test_match_honors_default_constructor_constraint() -> None:
    assert match_open_generic(Repository[Order], ConstructingRepository).satisfied
    assert match_open_generic(Repository[int], ConstructingRepository).satisfied
    assert not match_open_generic(Repository[NeedsName], ConstructingRepository).satisfied


def test_match_honors_value_and_reference_type_constraints() -> None:
    assert match_open_generic(Repository[int], ValueRepository).satisfied
    assert not match_open_generic(Repository[Order], ValueRepository).satisfied

    assert match_open_generic(Repository[Connection], ClosingRepository).satisfied
    assert not match_open_generic(Repository[Order], ClosingRepository).satisfied


def test_match_returns_no_match_for_unrelated_or_open_requests() -> None:
    assert not match_open_generic(Pair[int, str], NullRepository).satisfied
    assert not match_open_generic(Repository, NullRepository).satisfied
    assert not match_open_generic(Repository[T], NullRepository).satisfied
    assert not match_open_generic(Repository[int], OrderRepository).satisfied
    assert not match_open_generic(Repository[int], int).satisfied


def test_unsatisfied_match_carries_no_closed_type() -> None:
    result = match_open_generic(Repository[Product], EntityRepository)

    assert result.closed_implementation_type is None
    assert result.typevar_map == {}


def test_generic_projections_are_expressed_in_implementation_parameters() -> None:
    assert generic_projections(FlippedPair, Pair) == [(V, K)]
    assert generic_projections(TextKeyedPair, Pair) == [(str, V)]
    assert generic_projections(LeafRepository, Repository) == [(U,)]
    assert generic_projections(NullRepository, Pair) == []


def test_generic_definition_normalizes_open_definitions() -> None:
    assert generic_definition(Repository) is Repository
    assert generic_definition(Repository[T]) is Repository
    assert generic_definition(Pair[U, T]) is Pair
    assert generic_definition(Repository[int]) is None
    assert generic_definition(Pair[str, V]) is None
    assert generic_definition(Pair[T, T]) is None
    assert generic_definition(OrderRepository) is None
    assert generic_definition(int) is None


def test_closed_generic_helpers() -> None:
    assert is_closed_generic(Repository[int])
    assert not is_closed_generic(Repository[T])
    assert not is_closed_generic(Repository)
    assert is_generic_type_definition_of(Repository, Repository[int])
    assert not is_generic_type_definition_of(Pair, Repository[int])
    assert not is_generic_type_definition_of(Repository, Repository)
    assert contains_typevar(Pair[str, V])
    assert not contains_typevar(Pair[str, int])


def test_substitute_typevars_rebuilds_nested_aliases() -> None:
    assert substitute_typevars(Pair[K, list[V]], mapping={K: str, V: int}) == Pair[str, list[int]]
    assert substitute_typevars(T, mapping={}) is T


def test_check_constraints_reports_every_violation() -> None:
    violations = check_constraints(ClosingRepository, {T: int})

    assert len(violations) == 2
    assert "a reference type" in violations[0] or "a reference type" in violations[1]


def test_validate_typevar_arguments_raises_on_bound_violation() -> None:
    with pytest.raises(InterWireInvalidGenericTypeArgumentError, match="must satisfy bound"):
        validate_typevar_arguments({EntityT: Product})


def test_validate_typevar_arguments_raises_on_declared_constraint() -> None:
    with pytest.raises(InterWireInvalidGenericTypeArgumentError, match="a default constructor"):
        validate_typevar_arguments({T: NeedsName}, implementation=ConstructingRepository)

    validate_typevar_arguments({T: Order}, implementation=ConstructingRepository)
