class InterWireError(Exception):
    """Represent a base class for all InterWire-specific failures.

    Catch this type when you want to handle any InterWire error path without
    matching each concrete exception class individually.
    """


class InterWireInvalidRegistrationError(InterWireError):
    """Signal invalid registration configuration.

    Raised immediately by registration APIs such as ``Container.add_concrete``,
    ``Container.register_open_generic`` and ``Container.intercept_with`` when
    arguments are invalid. Configuration errors are never deferred to the first
    resolution.

    Typical fixes include passing an unbound generic definition (``Repository``
    or ``Repository[T]``) to open-generic registration, making the
    implementation derive from the service definition, or passing a callable
    predicate.
    """


class InterWireProviderDependencyInferenceError(InterWireInvalidRegistrationError):
    """Signal that required provider dependencies cannot be inferred.

    Common triggers are missing or unresolvable type annotations on required
    constructor or factory parameters.
    """


class InterWireDependencyNotRegisteredError(InterWireError):
    """Signal that a dependency key has no provider.

    Raised by ``Container.resolve`` when no explicit registration exists, no
    unregistered-type handler registered one, and the key is not eligible for
    implicit registration.

    Open-generic mappings whose constraints are not satisfied by the requested
    closed type fall through to this error as well.
    """


class InterWireCircularDependencyError(InterWireError):
    """Signal a cycle in the constructor dependency graph."""


class InterWireActivationError(InterWireError):
    """Signal that an instance required during resolution cannot be created.

    Raised at the first resolution of an intercepted service when the
    interceptor class has no registration and an implicit registration could
    not be made.
    """


class InterWireInterceptionError(InterWireError):
    """Signal a proxy request that cannot be honored.

    Raised by ``create_proxy`` when the service type is not an interface or the
    interceptor has no ``intercept`` method.

    Proxies are only supported over interface contracts: ``typing.Protocol``
    classes and abstract classes whose every public member is abstract.
    """


class InterWireInvalidGenericTypeArgumentError(InterWireError):
    """Signal invalid closed-generic arguments for an open definition.

    Raised by ``validate_typevar_arguments`` when a closing argument violates
    a TypeVar bound, a TypeVar constraint list, or a constraint declared with
    ``where``. The resolution hooks never raise it: a constraint failure there
    is a normal non-match.
    """
