from interwire.constraints import (
    BaseClassConstraint,
    DefaultConstructorConstraint,
    InterfaceConstraint,
    ReferenceTypeConstraint,
    TypeConstraint,
    ValueTypeConstraint,
    where,
)
from interwire.container import Container
from interwire.events import EventHook, ExpressionBuiltEventArgs, UnregisteredTypeEventArgs
from interwire.exceptions import (
    InterWireActivationError,
    InterWireCircularDependencyError,
    InterWireDependencyNotRegisteredError,
    InterWireError,
    InterWireInterceptionError,
    InterWireInvalidGenericTypeArgumentError,
    InterWireInvalidRegistrationError,
    InterWireProviderDependencyInferenceError,
)
from interwire.expressions import CallExpression, ConstantExpression, Expression, FactoryExpression
from interwire.generic_types import ConstraintMatchResult, match_open_generic
from interwire.interception import InterceptionComposer, intercept_with
from interwire.open_generics import register_open_generic
from interwire.producers import InstanceProducer
from interwire.providers import Lifetime
from interwire.proxies import Interceptor, Invocation, InvocationState, create_proxy, is_interface

__all__ = [
    "BaseClassConstraint",
    "CallExpression",
    "ConstantExpression",
    "ConstraintMatchResult",
    "Container",
    "DefaultConstructorConstraint",
    "EventHook",
    "Expression",
    "ExpressionBuiltEventArgs",
    "FactoryExpression",
    "InstanceProducer",
    "InterWireActivationError",
    "InterWireCircularDependencyError",
    "InterWireDependencyNotRegisteredError",
    "InterWireError",
    "InterWireInterceptionError",
    "InterWireInvalidGenericTypeArgumentError",
    "InterWireInvalidRegistrationError",
    "InterWireProviderDependencyInferenceError",
    "InterceptionComposer",
    "Interceptor",
    "InterfaceConstraint",
    "Invocation",
    "InvocationState",
    "Lifetime",
    "ReferenceTypeConstraint",
    "TypeConstraint",
    "UnregisteredTypeEventArgs",
    "ValueTypeConstraint",
    "create_proxy",
    "intercept_with",
    "is_interface",
    "match_open_generic",
    "register_open_generic",
    "where",
]
