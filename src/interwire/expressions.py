from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


class Expression(ABC):
    """Describe how an instance is produced at resolution time.

    An expression is either a constant value or a closure invoked on every
    resolution. Expressions compile once into a zero-argument callable.
    """

    @property
    @abstractmethod
    def is_constant(self) -> bool:
        """Return whether the expression always produces the same value."""

    @abstractmethod
    def compile(self) -> Callable[[], Any]:
        """Compile the expression into a zero-argument instance creator."""


@dataclass(frozen=True, slots=True)
class ConstantExpression(Expression):
    """An already materialized value."""

    value: Any

    @property
    def is_constant(self) -> bool:
        return True

    def compile(self) -> Callable[[], Any]:
        value = self.value
        return lambda: value


@dataclass(frozen=True, slots=True)
class FactoryExpression(Expression):
    """A zero-argument callable invoked on every resolution."""

    factory: Callable[[], Any]

    @property
    def is_constant(self) -> bool:
        return False

    def compile(self) -> Callable[[], Any]:
        return self.factory


@dataclass(frozen=True, slots=True)
class CallExpression(Expression):
    """A call of ``function`` with the values of argument expressions.

    The call itself is never constant: folding it into a constant is an
    explicit decision made with ``fold``.
    """

    function: Callable[..., Any]
    arguments: tuple[Expression, ...]

    @property
    def is_constant(self) -> bool:
        return False

    @property
    def has_constant_arguments(self) -> bool:
        return all(argument.is_constant for argument in self.arguments)

    def compile(self) -> Callable[[], Any]:
        function = self.function
        compiled_arguments = tuple(argument.compile() for argument in self.arguments)
        if len(compiled_arguments) == 1:
            (only,) = compiled_arguments
            return lambda: function(only())
        if len(compiled_arguments) == 2:  # noqa: PLR2004
            first, second = compiled_arguments
            return lambda: function(first(), second())
        return lambda: function(*(argument() for argument in compiled_arguments))

    def fold(self) -> Expression:
        """Evaluate the call now when every argument is constant.

        Composing constants yields a new constant. Composing a constant with a
        closure yields the call itself, evaluated on every resolution.

        Returns:
            A ``ConstantExpression`` holding the call result, or ``self``.

        """
        if not self.has_constant_arguments:
            return self
        return ConstantExpression(evaluate(self))


def evaluate(expression: Expression) -> Any:
    """Compile and run an expression once.

    Args:
        expression: Expression to evaluate.

    Returns:
        The produced value.

    """
    return expression.compile()()
