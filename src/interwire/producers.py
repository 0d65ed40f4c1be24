from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from interwire.events import ExpressionBuiltEventArgs
from interwire.exceptions import InterWireInvalidRegistrationError
from interwire.expressions import ConstantExpression, Expression, evaluate
from interwire.providers import Lifetime

if TYPE_CHECKING:
    from interwire.container import Container


class InstanceProducer:
    """A registration that knows how to produce instances of one service type.

    The producer builds its expression lazily. The first build fires the
    container's ``on_expression_built`` notification exactly once, so handlers
    can replace the expression before it is compiled. A singleton producer
    builds into a ``ConstantExpression`` that holds its single instance.
    """

    def __init__(
        self,
        *,
        container: Container,
        service_type: Any,
        lifetime: Lifetime,
        build_base_expression: Callable[[], Expression],
        is_implicit: bool = False,
    ) -> None:
        self._container = container
        self._service_type = service_type
        self._lifetime = lifetime
        self._build_base_expression = build_base_expression
        self._is_implicit = is_implicit
        self._lock = threading.RLock()
        self._expression: Expression | None = None
        self._instance_creator: Callable[[], Any] | None = None

    @property
    def service_type(self) -> Any:
        return self._service_type

    @property
    def lifetime(self) -> Lifetime:
        return self._lifetime

    @property
    def is_implicit(self) -> bool:
        """Return whether the container created this registration on demand."""
        return self._is_implicit

    def build_expression(self) -> Expression:
        """Build, intercept and cache the creation expression.

        Returns:
            The final expression after every ``on_expression_built`` handler ran.

        """
        expression = self._expression
        if expression is not None:
            return expression
        with self._lock:
            if self._expression is None:
                base_expression = self._build_base_expression()
                if self._lifetime is Lifetime.SINGLETON and not base_expression.is_constant:
                    base_expression = ConstantExpression(evaluate(base_expression))
                event = ExpressionBuiltEventArgs(self._service_type, base_expression)
                self._container.on_expression_built.fire(event)
                if not isinstance(event.expression, Expression):
                    msg = (
                        f"An expression-built handler for {self._service_type!r} replaced the "
                        f"expression with {event.expression!r}, which is not an Expression."
                    )
                    raise InterWireInvalidRegistrationError(msg)
                self._expression = event.expression
            return self._expression

    def get_instance(self) -> Any:
        """Produce an instance of the service type."""
        instance_creator = self._instance_creator
        if instance_creator is None:
            with self._lock:
                if self._instance_creator is None:
                    self._instance_creator = self.build_expression().compile()
                instance_creator = self._instance_creator
        return instance_creator()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(service_type={self._service_type!r}, "
            f"lifetime={self._lifetime.value})"
        )
