from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from interwire.exceptions import InterWireInvalidRegistrationError
from interwire.expressions import Expression, FactoryExpression

if TYPE_CHECKING:
    from typing_extensions import Self

EventArgsT = TypeVar("EventArgsT")

EventHandler = Callable[[EventArgsT], None]


class EventHook(Generic[EventArgsT]):
    """An ordered list of handlers for one notification kind.

    Handlers are invoked synchronously in subscription order on the thread that
    fires the event.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._handlers: list[EventHandler[EventArgsT]] = []

    @property
    def name(self) -> str:
        return self._name

    def subscribe(self, handler: EventHandler[EventArgsT]) -> EventHandler[EventArgsT]:
        """Append a handler.

        Args:
            handler: Callable receiving the event arguments.

        Returns:
            The handler, so the method can be used as a decorator.

        """
        if not callable(handler):
            msg = f"Handler for '{self._name}' must be callable, got {handler!r}."
            raise InterWireInvalidRegistrationError(msg)
        self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: EventHandler[EventArgsT]) -> None:
        self._handlers.remove(handler)

    def __iadd__(self, handler: EventHandler[EventArgsT]) -> Self:
        self.subscribe(handler)
        return self

    def __isub__(self, handler: EventHandler[EventArgsT]) -> Self:
        self.unsubscribe(handler)
        return self

    def fire(
        self,
        event: EventArgsT,
        *,
        until: Callable[[EventArgsT], bool] | None = None,
    ) -> EventArgsT:
        """Invoke handlers in order.

        Args:
            event: Mutable event arguments shared by every handler.
            until: Optional stop condition checked after each handler.

        Returns:
            The event arguments after all invoked handlers ran.

        """
        # Snapshot so handlers subscribed while firing only see later events.
        for handler in tuple(self._handlers):
            handler(event)
            if until is not None and until(event):
                break
        return event

    def __iter__(self) -> Iterator[EventHandler[EventArgsT]]:
        return iter(tuple(self._handlers))

    def __len__(self) -> int:
        return len(self._handlers)

    def __bool__(self) -> bool:
        return bool(self._handlers)


class UnregisteredTypeEventArgs:
    """Arguments of the unregistered-type notification.

    A handler either calls ``register`` to supply a way to create the requested
    type or returns without doing anything, leaving the type for the next
    handler.
    """

    __slots__ = ("_expression", "unregistered_service_type")

    def __init__(self, unregistered_service_type: Any) -> None:
        self.unregistered_service_type = unregistered_service_type
        self._expression: Expression | None = None

    @property
    def handled(self) -> bool:
        return self._expression is not None

    @property
    def expression(self) -> Expression | None:
        return self._expression

    def register(self, instance_creator: Callable[[], Any] | Expression) -> None:
        """Register how the requested type is created.

        Args:
            instance_creator: Zero-argument callable invoked on every
                resolution, or a prepared ``Expression``.

        Raises:
            InterWireInvalidRegistrationError: If a creator was already
                registered for this request or the creator is not callable.

        """
        if self._expression is not None:
            msg = (
                f"Multiple handlers tried to register an instance creator for "
                f"{self.unregistered_service_type!r}."
            )
            raise InterWireInvalidRegistrationError(msg)
        if isinstance(instance_creator, Expression):
            self._expression = instance_creator
            return
        if not callable(instance_creator):
            msg = f"Instance creator must be callable, got {instance_creator!r}."
            raise InterWireInvalidRegistrationError(msg)
        self._expression = FactoryExpression(instance_creator)


class ExpressionBuiltEventArgs:
    """Arguments of the expression-built notification.

    Handlers may replace ``expression``; the last assigned value is compiled.
    """

    __slots__ = ("expression", "registered_service_type")

    def __init__(self, registered_service_type: Any, expression: Expression) -> None:
        self.registered_service_type = registered_service_type
        self.expression = expression
