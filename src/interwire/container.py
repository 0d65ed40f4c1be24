from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Callable
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, Literal, TypeVar, cast, get_args, get_origin

from interwire.autoregistration import ConcreteTypeAutoregistrationPolicy
from interwire.events import EventHook, ExpressionBuiltEventArgs, UnregisteredTypeEventArgs
from interwire.exceptions import (
    InterWireCircularDependencyError,
    InterWireDependencyNotRegisteredError,
    InterWireInvalidRegistrationError,
)
from interwire.expressions import ConstantExpression, Expression, FactoryExpression
from interwire.generic_types import is_closed_generic, substitute_typevars
from interwire.producers import InstanceProducer
from interwire.providers import (
    Lifetime,
    ProviderDependenciesExtractor,
    ProviderDependency,
    ProviderReturnTypeExtractor,
)

if TYPE_CHECKING:
    from interwire.interception import InterceptionComposer, InterceptorSource
    from interwire.open_generics import OpenGenericResolver

T = TypeVar("T")

logger = logging.getLogger(__name__)

_resolution_stack: ContextVar[tuple[Any, ...]] = ContextVar("interwire_resolution_stack", default=())


class Container:
    """Register services and resolve them, with hooks for unregistered types.

    Dependency keys are concrete classes, protocols, abstract classes, or
    closed generic aliases such as ``Repository[Order]``. Constructor and
    factory dependencies are inferred from annotations.

    Two extension points let the container satisfy requests it was never told
    about:

    * ``on_unregistered_type`` fires once per unknown key. The first handler
      that calls ``event.register(...)`` wins and the result is stored as a
      regular registration, so later requests bypass the handlers.
    * ``on_expression_built`` fires once per registration, the first time its
      creation expression is built. Every handler may replace the expression.

    ``register_open_generic`` and ``intercept_with`` are built on these hooks.
    """

    def __init__(
        self,
        default_lifetime: Lifetime = Lifetime.TRANSIENT,
        *,
        autoregister_concrete_types: bool = True,
    ) -> None:
        """Initialize an empty container.

        Args:
            default_lifetime: Lifetime used by registrations that omit
                ``lifetime`` and by implicit registrations.
            autoregister_concrete_types: Register eligible concrete classes on
                their first request. Disable for strict mode.

        Examples:
            .. code-block:: python

                container = Container()

                strict_container = Container(autoregister_concrete_types=False)

        """
        self._default_lifetime = default_lifetime
        self._autoregister_concrete_types = autoregister_concrete_types

        self._concrete_autoregistration_policy = ConcreteTypeAutoregistrationPolicy()
        self._provider_dependencies_extractor = ProviderDependenciesExtractor()
        self._provider_return_type_extractor = ProviderReturnTypeExtractor()

        self._lock = threading.RLock()
        self._producers: dict[Any, InstanceProducer] = {}

        self.on_unregistered_type: EventHook[UnregisteredTypeEventArgs] = EventHook(
            "unregistered_type",
        )
        self.on_expression_built: EventHook[ExpressionBuiltEventArgs] = EventHook(
            "expression_built",
        )

    @property
    def default_lifetime(self) -> Lifetime:
        return self._default_lifetime

    # region Registration Methods
    def add_instance(self, instance: Any, *, provides: Any | Literal["infer"] = "infer") -> None:
        """Register a pre-built instance.

        The registration builds into a constant expression. Re-registering the
        same dependency key overrides the previous registration.

        Args:
            instance: Instance value to return on resolution.
            provides: Dependency key to bind. Use ``"infer"`` to bind by
                ``type(instance)``.

        Raises:
            InterWireInvalidRegistrationError: If ``provides`` is ``None``.

        """
        if provides is None:
            msg = "add_instance() parameter 'provides' must not be None; use 'infer'."
            raise InterWireInvalidRegistrationError(msg)
        resolved_provides = type(instance) if provides == "infer" else provides

        self._add_producer(
            InstanceProducer(
                container=self,
                service_type=resolved_provides,
                lifetime=Lifetime.SINGLETON,
                build_base_expression=lambda: ConstantExpression(instance),
            ),
        )

    def add_concrete(
        self,
        concrete_type: Any,
        *,
        provides: Any | Literal["infer"] = "infer",
        lifetime: Lifetime | Literal["from_container"] = "from_container",
    ) -> None:
        """Register a class whose constructor dependencies are inferred.

        ``concrete_type`` may be a closed generic alias of a concrete class, for
        example ``SqlRepository[Order]``; TypeVar annotations of its
        constructor are then replaced by the closing arguments.

        Args:
            concrete_type: Concrete class to instantiate.
            provides: Dependency key produced by this registration. ``"infer"``
                uses ``concrete_type`` directly.
            lifetime: Registration lifetime, or ``"from_container"`` to inherit
                the container default.

        Raises:
            InterWireInvalidRegistrationError: If ``concrete_type`` is not an
                instantiable class.
            InterWireProviderDependencyInferenceError: If constructor
                dependencies cannot be inferred from annotations.

        Examples:
            .. code-block:: python

                container.add_concrete(SqlUserRepository, provides=UserRepository)
                container.add_concrete(Clock, lifetime=Lifetime.SINGLETON)

        """
        self._validate_concrete_type(concrete_type)
        resolved_provides = concrete_type if provides == "infer" else provides
        if resolved_provides is None:
            msg = "add_concrete() parameter 'provides' must not be None; use 'infer'."
            raise InterWireInvalidRegistrationError(msg)
        resolved_lifetime = self._resolve_registration_lifetime(lifetime)
        dependencies = self._concrete_dependencies(concrete_type)

        self._add_producer(
            InstanceProducer(
                container=self,
                service_type=resolved_provides,
                lifetime=resolved_lifetime,
                build_base_expression=lambda: self._build_call_expression(
                    concrete_type,
                    dependencies,
                ),
            ),
        )

    def add_factory(
        self,
        factory: Callable[..., Any],
        *,
        provides: Any | Literal["infer"] = "infer",
        lifetime: Lifetime | Literal["from_container"] = "from_container",
    ) -> None:
        """Register a factory callable.

        Factory parameters are resolved from the container on every call.

        Args:
            factory: Callable producing the dependency.
            provides: Dependency key produced by this registration. ``"infer"``
                reads the factory return annotation.
            lifetime: Registration lifetime, or ``"from_container"`` to inherit
                the container default.

        Raises:
            InterWireInvalidRegistrationError: If ``factory`` is not callable or
                the return type cannot be inferred.

        Examples:
            .. code-block:: python

                def build_session(engine: Engine) -> Session:
                    return Session(engine)

                container.add_factory(build_session)

        """
        if not callable(factory):
            msg = f"Factory provider must be callable, got {factory!r}."
            raise InterWireInvalidRegistrationError(msg)
        if provides == "infer":
            resolved_provides = self._provider_return_type_extractor.extract_from_factory(factory)
        elif provides is None:
            msg = "add_factory() parameter 'provides' must not be None; use 'infer'."
            raise InterWireInvalidRegistrationError(msg)
        else:
            resolved_provides = provides
        resolved_lifetime = self._resolve_registration_lifetime(lifetime)
        dependencies = self._provider_dependencies_extractor.extract_from_factory(factory)

        self._add_producer(
            InstanceProducer(
                container=self,
                service_type=resolved_provides,
                lifetime=resolved_lifetime,
                build_base_expression=lambda: self._build_call_expression(factory, dependencies),
            ),
        )

    def register_open_generic(
        self,
        service_type: Any,
        implementation_type: Any,
        *,
        lifetime: Lifetime = Lifetime.TRANSIENT,
    ) -> OpenGenericResolver:
        """Map an open generic service definition to an open implementation.

        Requests for closed parameterizations of ``service_type`` that have no
        explicit registration are closed over the requested arguments and
        registered on first use. Mappings are tried in registration order; the
        first one whose constraints are satisfied wins.

        Args:
            service_type: Open generic service definition, for example
                ``Repository`` or ``Repository[T]``.
            implementation_type: Open generic implementation deriving from the
                service definition.
            lifetime: ``Lifetime.TRANSIENT`` for a new instance per request or
                ``Lifetime.SINGLETON`` for one instance per closed type.

        Returns:
            The resolver subscribed to ``on_unregistered_type``.

        Raises:
            InterWireInvalidRegistrationError: If either type is not an open
                generic definition, or the implementation does not derive from
                the service definition.

        Examples:
            .. code-block:: python

                container.register_open_generic(Validator, NullValidator)
                container.resolve(Validator[Customer])

        """
        from interwire.open_generics import register_open_generic  # noqa: PLC0415

        return register_open_generic(self, service_type, implementation_type, lifetime=lifetime)

    def intercept_with(
        self,
        interceptor: InterceptorSource,
        predicate: Callable[[Any], bool],
    ) -> InterceptionComposer:
        """Wrap matching interface services in interceptor proxies.

        Args:
            interceptor: An interceptor class resolved through the container, an
                interceptor instance, or a zero-argument interceptor factory.
            predicate: Called with each registered service type that is an
                interface; return ``True`` to intercept it.

        Returns:
            The composer subscribed to ``on_expression_built``.

        Examples:
            .. code-block:: python

                container.intercept_with(MonitoringInterceptor, lambda t: t is UserRepository)

        """
        from interwire.interception import intercept_with  # noqa: PLC0415

        return intercept_with(self, interceptor, predicate)

    # endregion Registration Methods

    # region Resolution Methods
    def resolve(self, service_type: type[T] | Any) -> T | Any:
        """Resolve an instance of ``service_type``.

        Args:
            service_type: Dependency key to resolve.

        Returns:
            The produced instance.

        Raises:
            InterWireDependencyNotRegisteredError: If no registration exists and
                none could be made.
            InterWireCircularDependencyError: If constructing the instance
                requires itself.

        """
        stack = _resolution_stack.get()
        if service_type in stack:
            chain = " -> ".join(_describe(item) for item in (*stack, service_type))
            msg = f"Circular dependency detected: {chain}."
            raise InterWireCircularDependencyError(msg)

        token = _resolution_stack.set((*stack, service_type))
        try:
            producer = self.get_registration(service_type)
            if producer is None:
                msg = f"No registration found for {_describe(service_type)}."
                raise InterWireDependencyNotRegisteredError(msg)
            return producer.get_instance()
        finally:
            _resolution_stack.reset(token)

    def get_registration(
        self,
        service_type: Any,
        *,
        allow_implicit: bool | None = None,
    ) -> InstanceProducer | None:
        """Return the registration for ``service_type``, creating one if possible.

        Lookup order is the explicit registration table, then the
        ``on_unregistered_type`` handlers, then implicit registration of an
        eligible concrete class. A registration created by a handler or
        implicitly is stored, so the handlers run at most once per key.

        Args:
            service_type: Dependency key to look up.
            allow_implicit: Override the container's
                ``autoregister_concrete_types`` setting for this lookup.

        Returns:
            The registration, or ``None`` when the key cannot be resolved.

        """
        with self._lock:
            producer = self._producers.get(service_type)
        if producer is not None:
            return producer

        event = UnregisteredTypeEventArgs(service_type)
        self.on_unregistered_type.fire(event, until=lambda fired: fired.handled)
        expression = event.expression
        if expression is not None:
            logger.debug("Registered %s through an unregistered-type handler", _describe(service_type))
            return self._store_discovered(
                InstanceProducer(
                    container=self,
                    service_type=service_type,
                    lifetime=Lifetime.SINGLETON if expression.is_constant else Lifetime.TRANSIENT,
                    build_base_expression=lambda: expression,
                ),
            )

        if allow_implicit is None:
            allow_implicit = self._autoregister_concrete_types
        if not allow_implicit or not self._concrete_autoregistration_policy.is_eligible_concrete(
            service_type,
        ):
            return None

        dependencies = self._concrete_dependencies(service_type)
        logger.debug("Registered %s implicitly", _describe(service_type))
        return self._store_discovered(
            InstanceProducer(
                container=self,
                service_type=service_type,
                lifetime=self._default_lifetime,
                build_base_expression=lambda: self._build_call_expression(
                    service_type,
                    dependencies,
                ),
                is_implicit=True,
            ),
        )

    def is_registered(self, service_type: Any) -> bool:
        """Return whether ``service_type`` has a stored registration."""
        with self._lock:
            return service_type in self._producers

    # endregion Resolution Methods

    def _add_producer(self, producer: InstanceProducer) -> None:
        with self._lock:
            self._producers[producer.service_type] = producer

    def _store_discovered(self, producer: InstanceProducer) -> InstanceProducer:
        # Another thread may have discovered the same key first; keep its registration.
        with self._lock:
            return self._producers.setdefault(producer.service_type, producer)

    def _resolve_registration_lifetime(
        self,
        lifetime: Lifetime | Literal["from_container"],
    ) -> Lifetime:
        if lifetime == "from_container":
            return self._default_lifetime
        if not isinstance(lifetime, Lifetime):
            msg = f"Invalid lifetime {lifetime!r}; expected a Lifetime value or 'from_container'."
            raise InterWireInvalidRegistrationError(msg)
        return lifetime

    def _validate_concrete_type(self, concrete_type: Any) -> None:
        concrete_class = get_origin(concrete_type) if is_closed_generic(concrete_type) else concrete_type
        if not inspect.isclass(concrete_class):
            msg = f"Concrete provider must be a class, got {concrete_type!r}."
            raise InterWireInvalidRegistrationError(msg)
        if inspect.isabstract(concrete_class) or concrete_class.__dict__.get("_is_protocol", False):
            msg = f"Concrete provider '{concrete_class.__qualname__}' cannot be an abstract class."
            raise InterWireInvalidRegistrationError(msg)

    def _concrete_dependencies(self, concrete_type: Any) -> list[ProviderDependency]:
        if not is_closed_generic(concrete_type):
            return self._provider_dependencies_extractor.extract_from_concrete_type(concrete_type)

        concrete_class = cast("type[Any]", get_origin(concrete_type))
        typevar_map = dict(zip(concrete_class.__parameters__, get_args(concrete_type)))
        return [
            ProviderDependency(
                provides=substitute_typevars(dependency.provides, mapping=typevar_map),
                parameter=dependency.parameter,
            )
            for dependency in self._provider_dependencies_extractor.extract_from_concrete_type(
                concrete_class,
            )
        ]

    def _build_call_expression(
        self,
        provider: Callable[..., Any],
        dependencies: list[ProviderDependency],
    ) -> Expression:
        positional: list[Callable[[], Any]] = []
        keyword: dict[str, Callable[[], Any]] = {}
        for dependency in dependencies:
            argument = self._dependency_argument(dependency.provides)
            if dependency.parameter.kind is inspect.Parameter.POSITIONAL_ONLY:
                positional.append(argument)
            else:
                keyword[dependency.parameter.name] = argument

        def create_instance() -> Any:
            return provider(
                *(argument() for argument in positional),
                **{name: argument() for name, argument in keyword.items()},
            )

        return FactoryExpression(create_instance)

    def _dependency_argument(self, provides: Any) -> Callable[[], Any]:
        if get_origin(provides) is type:
            # ``type[Order]`` receives the class itself.
            (type_argument,) = get_args(provides)
            return lambda: type_argument
        return lambda: self.resolve(provides)


def _describe(service_type: Any) -> str:
    if isinstance(service_type, type):
        return service_type.__qualname__
    return repr(service_type)
