from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar, get_args, get_origin

from interwire.constraints import declared_constraints, is_subtype
from interwire.exceptions import InterWireInvalidGenericTypeArgumentError


@dataclass(frozen=True, slots=True)
class ConstraintMatchResult:
    """The outcome of closing an open implementation over a requested type."""

    satisfied: bool
    closed_implementation_type: Any = None
    typevar_map: Mapping[TypeVar, Any] = field(default_factory=dict)


_NO_MATCH = ConstraintMatchResult(satisfied=False)


def match_open_generic(requested_type: Any, implementation_definition: Any) -> ConstraintMatchResult:
    """Close an open generic implementation over a requested closed type.

    The implementation's generic bases are walked recursively, so the requested
    definition may be reached through reordered or partially specialized
    parameters. Every projection of the implementation onto the requested
    definition is unified with the requested arguments in declaration order;
    the first one that binds all implementation parameters and satisfies all
    constraints wins.

    A non-match is a normal outcome and never raises.

    Args:
        requested_type: Closed generic alias, for example ``Repository[Order]``.
        implementation_definition: Open generic implementation, for example
            ``SqlRepository`` or ``SqlRepository[T]``.

    Returns:
        A satisfied result carrying the closed implementation type, or an
        unsatisfied result.

    """
    if not is_closed_generic(requested_type):
        return _NO_MATCH
    implementation = generic_definition(implementation_definition)
    if implementation is None:
        return _NO_MATCH

    requested_arguments = get_args(requested_type)
    requested_parameters: tuple[TypeVar | None, ...] = _typevar_parameters(get_origin(requested_type))
    if len(requested_parameters) != len(requested_arguments):
        requested_parameters = (None,) * len(requested_arguments)
    parameters: tuple[TypeVar, ...] = implementation.__parameters__
    for projection in generic_projections(implementation, get_origin(requested_type)):
        if len(projection) != len(requested_arguments):
            continue

        mapping: dict[TypeVar, Any] = {}
        if not all(
            _match_argument(template=template, concrete=concrete, parameter=parameter, mapping=mapping)
            for template, concrete, parameter in zip(projection, requested_arguments, requested_parameters)
        ):
            continue
        if any(parameter not in mapping for parameter in parameters):
            continue

        typevar_map = {parameter: mapping[parameter] for parameter in parameters}
        if check_constraints(implementation, typevar_map):
            continue

        closed_implementation = _rebuild_alias(
            origin=implementation,
            args=tuple(typevar_map.values()),
            fallback=None,
        )
        if closed_implementation is None:
            continue
        return ConstraintMatchResult(
            satisfied=True,
            closed_implementation_type=closed_implementation,
            typevar_map=typevar_map,
        )
    return _NO_MATCH


def generic_projections(implementation: type[Any], definition: Any) -> list[tuple[Any, ...]]:
    """Return the argument lists under which ``implementation`` derives from ``definition``.

    Arguments are expressed in terms of the implementation's own type
    parameters. ``class Flipped(Pair[B, A], Generic[A, B])`` projects onto
    ``Pair`` as ``(B, A)``; ``class TextMap(Map[str, V])`` as ``(str, V)``.

    Args:
        implementation: Generic class to inspect.
        definition: Generic definition to project onto.

    Returns:
        Distinct projections in base-class declaration order.

    """
    parameters = tuple(getattr(implementation, "__parameters__", ()))
    if implementation is definition:
        return [parameters]

    found: list[tuple[Any, ...]] = []
    _collect_projections(
        cls=implementation,
        mapping={parameter: parameter for parameter in parameters},
        definition=definition,
        found=found,
    )
    return found


def check_constraints(implementation: type[Any], typevar_map: Mapping[TypeVar, Any]) -> list[str]:
    """Return one message per violated constraint of ``implementation``.

    Checks ``TypeVar`` bounds, ``TypeVar`` constraint lists and constraints
    declared with ``where``.
    """
    violations: list[str] = []
    declared = declared_constraints(implementation)
    for typevar, argument in typevar_map.items():
        message = _typevar_violation(typevar=typevar, argument=argument)
        if message is not None:
            violations.append(message)
        violations.extend(
            f"Generic argument {argument!r} for TypeVar '{typevar.__name__}' must satisfy "
            f"{constraint.describe()}."
            for constraint in declared.get(typevar, ())
            if not constraint.is_satisfied_by(argument)
        )
    return violations


def validate_typevar_arguments(
    typevar_map: Mapping[TypeVar, Any],
    *,
    implementation: type[Any] | None = None,
) -> None:
    """Validate closed generic arguments against their constraints.

    Args:
        typevar_map: Mapping from open TypeVars to candidate concrete arguments.
        implementation: Optional class whose ``where`` constraints also apply.

    Raises:
        InterWireInvalidGenericTypeArgumentError: If any argument violates
            TypeVar constraints, bounds, or declared constraints.

    """
    if implementation is None:
        violations = [
            message
            for typevar, argument in typevar_map.items()
            if (message := _typevar_violation(typevar=typevar, argument=argument)) is not None
        ]
    else:
        violations = check_constraints(implementation, typevar_map)
    if violations:
        raise InterWireInvalidGenericTypeArgumentError(violations[0])


def generic_definition(value: Any) -> type[Any] | None:
    """Normalize an open generic definition to its class.

    ``Repository`` and ``Repository[T]`` both normalize to ``Repository``.
    Partially closed aliases such as ``Map[str, V]`` are not definitions.

    Returns:
        The generic class, or ``None`` when ``value`` is not an open definition.

    """
    origin = get_origin(value)
    if origin is None:
        if isinstance(value, type) and _typevar_parameters(value):
            return value
        return None

    arguments = get_args(value)
    if not isinstance(origin, type) or not arguments:
        return None
    if all(isinstance(argument, TypeVar) for argument in arguments) and len(set(arguments)) == len(
        _typevar_parameters(origin),
    ) == len(arguments):
        return origin
    return None


def is_open_generic_definition(value: Any) -> bool:
    return generic_definition(value) is not None


def is_generic_type_definition_of(definition: Any, requested_type: Any) -> bool:
    """Return whether ``requested_type`` is a parameterization of ``definition``."""
    origin = get_origin(requested_type)
    return origin is not None and origin is definition


def is_closed_generic(value: Any) -> bool:
    """Return whether ``value`` is a parameterized alias without free ``TypeVar``s."""
    arguments = get_args(value) if get_origin(value) is not None else ()
    return bool(arguments) and not contains_typevar(arguments)


def contains_typevar(value: Any) -> bool:
    """Return whether a type expression still contains a ``TypeVar``."""
    if isinstance(value, tuple):
        return any(contains_typevar(item) for item in value)
    if isinstance(value, TypeVar):
        return True
    if get_origin(value) is None:
        # A bare generic class such as ``Repository`` is still open.
        return bool(_typevar_parameters(value))
    return contains_typevar(get_args(value))


def substitute_typevars(value: Any, *, mapping: Mapping[TypeVar, Any]) -> Any:
    """Replace the ``TypeVar``s of a type expression, recursing into aliases.

    ``TypeVar``s missing from ``mapping`` are left in place.

    Args:
        value: Type expression such as ``T``, ``list[T]`` or ``Pair[K, list[V]]``.
        mapping: Replacement for each ``TypeVar``.

    Returns:
        The rebuilt type expression, or ``value`` when it cannot be rebuilt.

    """
    if isinstance(value, TypeVar):
        return mapping.get(value, value)
    origin = get_origin(value)
    if origin is None or not get_args(value):
        return value
    replaced = tuple(substitute_typevars(item, mapping=mapping) for item in get_args(value))
    return _rebuild_alias(origin=origin, args=replaced, fallback=value)


def _collect_projections(
    *,
    cls: type[Any],
    mapping: Mapping[TypeVar, Any],
    definition: Any,
    found: list[tuple[Any, ...]],
) -> None:
    # __orig_bases__ is inherited through attribute lookup; only the class's own entry counts.
    bases = cls.__dict__.get("__orig_bases__", cls.__bases__)
    for base in bases:
        base_origin = get_origin(base) or base
        if base_origin in (Generic, Protocol, object) or not isinstance(base_origin, type):
            continue

        base_parameters = _typevar_parameters(base_origin)
        base_arguments = get_args(base) if get_origin(base) is not None else base_parameters
        substituted = tuple(substitute_typevars(argument, mapping=mapping) for argument in base_arguments)

        if base_origin is definition:
            if substituted not in found:
                found.append(substituted)
            continue

        next_mapping = (
            dict(zip(base_parameters, substituted))
            if len(base_parameters) == len(substituted)
            else {}
        )
        _collect_projections(
            cls=base_origin,
            mapping=next_mapping,
            definition=definition,
            found=found,
        )


def _match_argument(
    *,
    template: Any,
    concrete: Any,
    parameter: TypeVar | None,
    mapping: dict[TypeVar, Any],
) -> bool:
    # Variance only relaxes plain classes fixed by the implementation's bases.
    if (
        parameter is None
        or contains_typevar(template)
        or get_origin(template) is not None
        or get_origin(concrete) is not None
    ):
        return _match_node(template=template, concrete=concrete, mapping=mapping)
    if getattr(parameter, "__covariant__", False):
        return is_subtype(template, concrete)
    if getattr(parameter, "__contravariant__", False):
        return is_subtype(concrete, template)
    return _match_node(template=template, concrete=concrete, mapping=mapping)


def _match_node(*, template: Any, concrete: Any, mapping: dict[TypeVar, Any]) -> bool:
    if isinstance(template, TypeVar):
        bound_value = mapping.setdefault(template, concrete)
        return bound_value == concrete

    origin = get_origin(template)
    if origin is None:
        return template == concrete
    if get_origin(concrete) != origin:
        return False

    template_items = get_args(template)
    concrete_items = get_args(concrete)
    return len(template_items) == len(concrete_items) and all(
        _match_node(template=item, concrete=other, mapping=mapping)
        for item, other in zip(template_items, concrete_items)
    )


def _typevar_violation(*, typevar: TypeVar, argument: Any) -> str | None:
    constraints = getattr(typevar, "__constraints__", ())
    if constraints:
        if any(is_subtype(argument, constraint) for constraint in constraints):
            return None
        formatted_constraints = ", ".join(repr(item) for item in constraints)
        return (
            f"Generic argument {argument!r} for TypeVar '{typevar.__name__}' must satisfy "
            f"one of: {formatted_constraints}."
        )
    bound = getattr(typevar, "__bound__", None)
    if bound is None or is_subtype(argument, bound):
        return None
    return f"Generic argument {argument!r} for TypeVar '{typevar.__name__}' must satisfy bound {bound!r}."


def _typevar_parameters(value: Any) -> tuple[TypeVar, ...]:
    return tuple(filter(lambda item: isinstance(item, TypeVar), getattr(value, "__parameters__", ())))


def _rebuild_alias(*, origin: Any, args: tuple[Any, ...], fallback: Any) -> Any:
    subscript = args[0] if len(args) == 1 else args
    try:
        return origin[subscript]
    except TypeError:
        return fallback
