from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias

from interwire.events import ExpressionBuiltEventArgs
from interwire.exceptions import InterWireActivationError, InterWireInvalidRegistrationError
from interwire.expressions import CallExpression, ConstantExpression, Expression, FactoryExpression
from interwire.proxies import Interceptor, create_proxy, is_interface

if TYPE_CHECKING:
    from interwire.container import Container

logger = logging.getLogger(__name__)

InterceptorSource: TypeAlias = "type[Interceptor] | Interceptor | Callable[[], Interceptor]"
"""An interceptor class, an interceptor instance, or a zero-argument interceptor factory."""


@dataclass(frozen=True, slots=True)
class InterceptionRule:
    """Which services to intercept and how to obtain their interceptor."""

    predicate: Callable[[Any], bool]
    build_interceptor_expression: Callable[[], Expression]


class InterceptionComposer:
    """Rewrite creation expressions of matching interfaces into proxy expressions.

    Subscribed to ``Container.on_expression_built``. Each composer wraps the
    expression it receives, so composers subscribed later produce outer
    proxies.
    """

    def __init__(self, *, rule: InterceptionRule) -> None:
        self._rule = rule

    @property
    def rule(self) -> InterceptionRule:
        return self._rule

    def on_expression_built(self, event: ExpressionBuiltEventArgs) -> None:
        # Proxies are built over interface contracts only.
        service_type = event.registered_service_type
        if is_interface(service_type) and self._rule.predicate(service_type):
            event.expression = self._build_proxy_expression(event)

    def _build_proxy_expression(self, event: ExpressionBuiltEventArgs) -> Expression:
        interceptor = self._rule.build_interceptor_expression()
        proxy_expression = CallExpression(
            functools.partial(create_proxy, event.registered_service_type),
            (interceptor, event.expression),
        )

        # Singletons: build the proxy once instead of on every resolution.
        if event.expression.is_constant and interceptor.is_constant:
            logger.debug("Folding proxy for %r into a constant", event.registered_service_type)
            return proxy_expression.fold()

        return proxy_expression


def intercept_with(
    container: Container,
    interceptor: InterceptorSource,
    predicate: Callable[[Any], bool],
) -> InterceptionComposer:
    """Intercept every interface service matching ``predicate``.

    Only the rule is stored here; an interceptor class is looked up in the
    container at the first build of an intercepted registration.

    Args:
        container: Container whose registrations are intercepted.
        interceptor: Interceptor class, instance, or zero-argument factory.
        predicate: Selects the service types to intercept. Non-interface
            types are never intercepted, whatever the predicate returns.

    Returns:
        The subscribed composer.

    Raises:
        InterWireInvalidRegistrationError: If an argument is ``None`` or
            ``predicate`` is not callable.

    """
    if interceptor is None:
        msg = "intercept_with() parameter 'interceptor' must not be None."
        raise InterWireInvalidRegistrationError(msg)
    if predicate is None or not callable(predicate):
        msg = f"intercept_with() parameter 'predicate' must be callable, got {predicate!r}."
        raise InterWireInvalidRegistrationError(msg)

    composer = InterceptionComposer(
        rule=InterceptionRule(
            predicate=predicate,
            build_interceptor_expression=_interceptor_expression_builder(container, interceptor),
        ),
    )
    container.on_expression_built.subscribe(composer.on_expression_built)
    return composer


def _interceptor_expression_builder(
    container: Container,
    interceptor: InterceptorSource,
) -> Callable[[], Expression]:
    if isinstance(interceptor, type):
        interceptor_type = interceptor
        return lambda: _build_registered_interceptor_expression(container, interceptor_type)
    if isinstance(interceptor, Interceptor):
        constant = ConstantExpression(interceptor)
        return lambda: constant
    if callable(interceptor):
        factory = FactoryExpression(interceptor)
        return lambda: factory
    msg = (
        f"Interceptor {interceptor!r} must be an interceptor class, an object with an "
        "'intercept' method, or a zero-argument factory."
    )
    raise InterWireInvalidRegistrationError(msg)


def _build_registered_interceptor_expression(
    container: Container,
    interceptor_type: type[Interceptor],
) -> Expression:
    registration = container.get_registration(interceptor_type)
    if registration is None:
        msg = (
            f"No registration for interceptor type {interceptor_type.__qualname__} "
            "could be found and an implicit registration could not be made."
        )
        raise InterWireActivationError(msg)
    return registration.build_expression()
