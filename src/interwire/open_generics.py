from __future__ import annotations

import inspect
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from interwire.events import UnregisteredTypeEventArgs
from interwire.exceptions import InterWireActivationError, InterWireInvalidRegistrationError
from interwire.expressions import ConstantExpression
from interwire.generic_types import (
    generic_definition,
    generic_projections,
    is_generic_type_definition_of,
    match_open_generic,
)
from interwire.providers import Lifetime

if TYPE_CHECKING:
    from interwire.container import Container

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OpenGenericRegistration:
    """An open service definition mapped to an open implementation definition."""

    service_type_definition: type[Any]
    implementation_type_definition: type[Any]
    lifetime: Lifetime


@dataclass(frozen=True, slots=True)
class ClosedGenericKey:
    """A closed service type together with the implementation it was closed to."""

    service_type: Any
    implementation_type: Any


class OpenGenericResolver(ABC):
    """Resolve closed requests of one open generic mapping.

    Subscribed to ``Container.on_unregistered_type``. Requests for other
    generic definitions are ignored, so several resolvers can coexist, each
    scoped to its own mapping.
    """

    def __init__(self, *, container: Container, registration: OpenGenericRegistration) -> None:
        self._container = container
        self._registration = registration

    @property
    def registration(self) -> OpenGenericRegistration:
        return self._registration

    def resolve_open_generic(self, event: UnregisteredTypeEventArgs) -> None:
        requested_type = event.unregistered_service_type
        if not is_generic_type_definition_of(
            self._registration.service_type_definition,
            requested_type,
        ):
            return

        result = match_open_generic(
            requested_type,
            self._registration.implementation_type_definition,
        )
        if not result.satisfied:
            logger.debug(
                "Open generic %s cannot be closed over %r",
                self._registration.implementation_type_definition.__qualname__,
                requested_type,
            )
            return

        logger.debug("Closing %r as %r", requested_type, result.closed_implementation_type)
        self.register(
            ClosedGenericKey(
                service_type=requested_type,
                implementation_type=result.closed_implementation_type,
            ),
            event,
        )

    @abstractmethod
    def register(self, key: ClosedGenericKey, event: UnregisteredTypeEventArgs) -> None:
        """Register an instance creator for ``key.service_type`` on ``event``."""


class TransientOpenGenericResolver(OpenGenericResolver):
    """Resolves a given open generic type as transient."""

    def register(self, key: ClosedGenericKey, event: UnregisteredTypeEventArgs) -> None:
        producer = self._container.get_registration(key.implementation_type, allow_implicit=True)
        if producer is None:
            msg = f"No registration for {key.implementation_type!r} could be made."
            raise InterWireActivationError(msg)

        event.register(producer.get_instance)


class SingletonOpenGenericResolver(OpenGenericResolver):
    """Resolves a given open generic type as singleton, one instance per closed type."""

    def __init__(self, *, container: Container, registration: OpenGenericRegistration) -> None:
        super().__init__(container=container, registration=registration)
        # Reentrant: building an instance may close another type through this resolver.
        self._lock = threading.RLock()
        self._singletons: dict[ClosedGenericKey, Any] = {}

    def register(self, key: ClosedGenericKey, event: UnregisteredTypeEventArgs) -> None:
        event.register(ConstantExpression(self._get_singleton(key)))

    def _get_singleton(self, key: ClosedGenericKey) -> Any:
        with self._lock:
            if key not in self._singletons:
                producer = self._container.get_registration(
                    key.implementation_type,
                    allow_implicit=True,
                )
                if producer is None:
                    msg = f"No registration for {key.implementation_type!r} could be made."
                    raise InterWireActivationError(msg)
                self._singletons[key] = producer.get_instance()
            return self._singletons[key]


_RESOLVER_TYPES: dict[Lifetime, type[OpenGenericResolver]] = {
    Lifetime.TRANSIENT: TransientOpenGenericResolver,
    Lifetime.SINGLETON: SingletonOpenGenericResolver,
}


def register_open_generic(
    container: Container,
    service_type: Any,
    implementation_type: Any,
    *,
    lifetime: Lifetime = Lifetime.TRANSIENT,
) -> OpenGenericResolver:
    """Validate an open generic mapping and subscribe its resolver.

    All requirements are checked here, at registration time.

    Args:
        container: Container receiving the mapping.
        service_type: Open generic service definition.
        implementation_type: Open generic implementation definition.
        lifetime: Transient or singleton.

    Returns:
        The subscribed resolver.

    Raises:
        InterWireInvalidRegistrationError: If a requirement is not met.

    """
    service_definition = _require_open_generic(service_type, parameter_name="service_type")
    implementation_definition = _require_open_generic(
        implementation_type,
        parameter_name="implementation_type",
    )
    if implementation_definition is service_definition:
        msg = (
            f"Open generic implementation {implementation_definition.__qualname__} must differ "
            "from the service definition; concrete generic classes resolve implicitly."
        )
        raise InterWireInvalidRegistrationError(msg)
    if inspect.isabstract(implementation_definition) or implementation_definition.__dict__.get(
        "_is_protocol",
        False,
    ):
        msg = (
            f"Open generic implementation {implementation_definition.__qualname__} "
            "cannot be an abstract class."
        )
        raise InterWireInvalidRegistrationError(msg)
    if not generic_projections(implementation_definition, service_definition):
        msg = (
            f"{implementation_definition.__qualname__} does not derive from "
            f"{service_definition.__qualname__} and cannot be registered for it."
        )
        raise InterWireInvalidRegistrationError(msg)

    resolver_type = _RESOLVER_TYPES.get(lifetime)
    if resolver_type is None:
        msg = f"Open generic registrations support transient and singleton lifetimes, got {lifetime!r}."
        raise InterWireInvalidRegistrationError(msg)

    resolver = resolver_type(
        container=container,
        registration=OpenGenericRegistration(
            service_type_definition=service_definition,
            implementation_type_definition=implementation_definition,
            lifetime=lifetime,
        ),
    )
    container.on_unregistered_type.subscribe(resolver.resolve_open_generic)
    logger.debug(
        "Registered open generic %s -> %s (%s)",
        service_definition.__qualname__,
        implementation_definition.__qualname__,
        lifetime.value,
    )
    return resolver


def _require_open_generic(value: Any, *, parameter_name: str) -> type[Any]:
    definition = generic_definition(value)
    if definition is None:
        msg = (
            f"Parameter '{parameter_name}' must be an open generic type definition such as "
            f"Repository or Repository[T], got {value!r}."
        )
        raise InterWireInvalidRegistrationError(msg)
    return definition
