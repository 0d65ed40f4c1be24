from __future__ import annotations

import inspect
import threading
import types
from collections.abc import Callable
from enum import Enum
from functools import lru_cache
from typing import Any, Generic, Protocol, TypeVar, cast, get_origin, runtime_checkable

from interwire.exceptions import InterWireInterceptionError

T = TypeVar("T")

_INFRASTRUCTURE_BASES: tuple[Any, ...] = (object, Generic, Protocol)
_NEVER_FORWARDED = frozenset(
    {
        "__init__",
        "__new__",
        "__init_subclass__",
        "__class_getitem__",
        "__subclasshook__",
        "__getattr__",
        "__getattribute__",
        "__setattr__",
        "__delattr__",
    },
)
_FORWARDED_METADATA = ("__module__", "__name__", "__qualname__", "__doc__")

# Bounded so that closing many generic interfaces cannot grow the cache without limit.
_PROXY_TYPE_CACHE_SIZE = 256
_proxy_types_lock = threading.Lock()


class InvocationState(Enum):
    """Lifecycle of a single intercepted call."""

    CREATED = "created"
    DISPATCHING = "dispatching"
    PROCEEDED = "proceeded"
    COMPLETED = "completed"


class Invocation:
    """A single in-flight call made on a proxy.

    The interceptor receives the invocation, may call ``proceed`` any number of
    times to run the real member with the original arguments, and may set
    ``return_value`` to whatever the caller should observe. Each ``proceed``
    call runs the real member again.
    """

    __slots__ = (
        "_is_property",
        "arguments",
        "invocation_target",
        "keyword_arguments",
        "method",
        "method_name",
        "proceed_count",
        "proxy",
        "return_value",
        "state",
    )

    def __init__(  # noqa: PLR0913
        self,
        *,
        proxy: Any,
        method: Any,
        method_name: str,
        arguments: tuple[Any, ...],
        keyword_arguments: dict[str, Any],
        invocation_target: Any,
        is_property: bool = False,
    ) -> None:
        self.proxy = proxy
        self.method = method
        self.method_name = method_name
        self.arguments = arguments
        self.keyword_arguments = keyword_arguments
        self.invocation_target = invocation_target
        self.return_value: Any = None
        self.proceed_count = 0
        self.state = InvocationState.CREATED
        self._is_property = is_property

    @property
    def proceeded(self) -> bool:
        return self.proceed_count > 0

    def proceed(self) -> Any:
        """Run the real member with the original arguments.

        Exceptions raised by the real member propagate unmodified.

        Returns:
            The real result, also stored in ``return_value``.

        """
        member = getattr(self.invocation_target, self.method_name)
        result = member if self._is_property else member(*self.arguments, **self.keyword_arguments)
        self.return_value = result
        self.proceed_count += 1
        self.state = InvocationState.PROCEEDED
        return result

    def get_concrete_method(self) -> Any:
        """Return the implementation's function or property for this call."""
        return inspect.getattr_static(type(self.invocation_target), self.method_name, None)

    def __repr__(self) -> str:
        return (
            f"Invocation(method_name={self.method_name!r}, arguments={self.arguments!r}, "
            f"keyword_arguments={self.keyword_arguments!r}, state={self.state.value})"
        )


@runtime_checkable
class Interceptor(Protocol):
    """Observe and control calls made on a proxied instance."""

    def intercept(self, invocation: Invocation) -> None: ...


def create_proxy(service_type: type[T] | Any, interceptor: Interceptor, real_instance: Any) -> T:
    """Wrap ``real_instance`` in a proxy implementing ``service_type``.

    Every method and property of the interface is routed through
    ``interceptor.intercept``. The proxy class is built once per service type
    and reused.

    Args:
        service_type: Interface to implement, possibly a closed generic alias.
        interceptor: Receives one ``Invocation`` per call.
        real_instance: Instance the calls are forwarded to on ``proceed``.

    Returns:
        The proxy instance.

    Raises:
        InterWireInterceptionError: If ``service_type`` is not an interface or
            ``interceptor`` has no ``intercept`` method.

    """
    if not isinstance(interceptor, Interceptor):
        msg = f"Interceptor {interceptor!r} does not define an 'intercept' method."
        raise InterWireInterceptionError(msg)
    proxy_type = proxy_type_for(service_type)
    return cast("T", proxy_type(interceptor, real_instance))


def proxy_type_for(service_type: Any) -> type[Any]:
    """Return the cached proxy class for ``service_type``, building it on first use.

    The most recently used proxy classes are kept; an evicted one is rebuilt on
    its next use.
    """
    if not is_interface(service_type):
        msg = (
            f"Cannot create a proxy for {service_type!r}: only interfaces (protocols and "
            "abstract classes whose public members are all abstract) can be proxied."
        )
        raise InterWireInterceptionError(msg)
    with _proxy_types_lock:
        return _cached_proxy_type(service_type)


def is_interface(service_type: Any) -> bool:
    """Return whether ``service_type`` is an interface contract.

    Protocol classes are interfaces. Abstract classes are interfaces only when
    every public member is abstract; an abstract class with concrete members is
    treated as a base class and is never proxied. A type with an abstract
    member the proxy does not forward, such as a private method or a
    classmethod, is not an interface either.
    """
    interface = get_origin(service_type) or service_type
    if not isinstance(interface, type):
        return False
    if not interface.__dict__.get("_is_protocol", False):
        if not inspect.isabstract(interface):
            return False
        for cls in interface.__mro__:
            if cls in _INFRASTRUCTURE_BASES or cls.__module__ == "abc":
                continue
            for name, value in cls.__dict__.items():
                if name.startswith("_") or not _is_member(value):
                    continue
                if not getattr(value, "__isabstractmethod__", False):
                    return False
    # A proxy must implement every abstract member, or it cannot be instantiated.
    forwarded = interface_members(interface)
    return all(name in forwarded for name in getattr(interface, "__abstractmethods__", ()))


def interface_members(service_type: Any) -> dict[str, Any]:
    """Return the methods and properties a proxy for ``service_type`` forwards."""
    interface = get_origin(service_type) or service_type
    members: dict[str, Any] = {}
    for cls in reversed(interface.__mro__):
        if cls in _INFRASTRUCTURE_BASES or cls.__module__ == "abc":
            continue
        is_protocol = cls.__dict__.get("_is_protocol", False)
        for name, value in cls.__dict__.items():
            if not (inspect.isfunction(value) or isinstance(value, property)):
                continue
            if name.startswith("_") and not _is_forwarded_dunder(name, value, is_protocol=is_protocol):
                continue
            members[name] = value
    return members


def _is_forwarded_dunder(name: str, value: Any, *, is_protocol: bool) -> bool:
    if not (name.startswith("__") and name.endswith("__")) or name in _NEVER_FORWARDED:
        return False
    return is_protocol or bool(getattr(value, "__isabstractmethod__", False))


def _is_member(value: Any) -> bool:
    return isinstance(value, (property, classmethod, staticmethod)) or inspect.isfunction(value)


@lru_cache(maxsize=_PROXY_TYPE_CACHE_SIZE)
def _cached_proxy_type(service_type: Any) -> type[Any]:
    return _build_proxy_type(service_type)


def _build_proxy_type(service_type: Any) -> type[Any]:
    interface = get_origin(service_type) or service_type
    namespace: dict[str, Any] = {
        "__init__": _proxy_init,
        "__repr__": _proxy_repr,
        "__module__": __name__,
    }
    for name, member in interface_members(service_type).items():
        if isinstance(member, property):
            namespace[name] = _property_forwarder(name, member)
        else:
            namespace[name] = _method_forwarder(name, member)

    return types.new_class(
        f"{interface.__name__}Proxy",
        (service_type,),
        exec_body=lambda body: body.update(namespace),
    )


def _proxy_init(self: Any, interceptor: Interceptor, real_instance: Any) -> None:
    object.__setattr__(self, "_interwire_interceptor", interceptor)
    object.__setattr__(self, "_interwire_target", real_instance)


def _proxy_repr(self: Any) -> str:
    return f"<{type(self).__name__} for {self._interwire_target!r}>"


def _method_forwarder(name: str, method: Callable[..., Any]) -> Callable[..., Any]:
    def forward(self: Any, *args: Any, **kwargs: Any) -> Any:
        return _dispatch(self, method=method, method_name=name, arguments=args, keyword_arguments=kwargs)

    # The abstract marker must not be copied, or the proxy class stays abstract.
    for attribute in _FORWARDED_METADATA:
        value = getattr(method, attribute, None)
        if value is not None:
            setattr(forward, attribute, value)
    forward.__wrapped__ = method  # type: ignore[attr-defined]
    return forward


def _property_forwarder(name: str, member: property) -> property:
    def get(self: Any) -> Any:
        return _dispatch(
            self,
            method=member,
            method_name=name,
            arguments=(),
            keyword_arguments={},
            is_property=True,
        )

    return property(get, doc=member.__doc__)


def _dispatch(  # noqa: PLR0913
    proxy: Any,
    *,
    method: Any,
    method_name: str,
    arguments: tuple[Any, ...],
    keyword_arguments: dict[str, Any],
    is_property: bool = False,
) -> Any:
    invocation = Invocation(
        proxy=proxy,
        method=method,
        method_name=method_name,
        arguments=arguments,
        keyword_arguments=keyword_arguments,
        invocation_target=proxy._interwire_target,  # noqa: SLF001
        is_property=is_property,
    )
    invocation.state = InvocationState.DISPATCHING
    proxy._interwire_interceptor.intercept(invocation)  # noqa: SLF001
    invocation.state = InvocationState.COMPLETED
    return invocation.return_value
