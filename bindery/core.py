"""Dependency resolution engine."""

from __future__ import annotations

import abc
import inspect
import logging
import threading
from collections import ChainMap
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, TypeVar

from .constructors import (
    ConstructorSelector,
    compile_plan,
    create_function_plan,
    create_plan,
    invoke_plan,
    reject_async_constructors,
)
from .errors import InvalidFactoryError, ResolutionError, UnregisteredTypeError
from .type_filters import runtime_class
from .type_hierarchy import candidate_types
from .utils import UNRESOLVED

logger = logging.getLogger(__name__)

TService = TypeVar("TService")
TReturn = TypeVar("TReturn")


class CachePolicy(IntEnum):
    never = 0
    transient = 1


@dataclass(frozen=True)
class ResolutionRequest:
    """What a predicate, factory or cache key function sees: the live context and the type being resolved."""

    context: ResolutionContext
    target_type: Any

    @property
    def arguments(self) -> tuple[Any, ...]:
        return self.context.arguments

    @property
    def registry(self) -> Registry:
        return self.context.registry


class Resolver(abc.ABC):
    """One strategy for producing a value. Returns ``UNRESOLVED`` to decline."""

    @abc.abstractmethod
    def resolve(self, context: ResolutionContext, target_type: Any) -> Any: ...


class ConstructorResolver(Resolver):
    """
    Constructs ``implementation`` reflectively. A resolver with its own constructor selector
    keeps the procedure it compiled, the registry only shares procedures for the default selector.
    """

    __slots__ = ("_compiled", "_lock", "constructor_selector", "implementation")

    def __init__(self, implementation: Any, constructor_selector: ConstructorSelector | None = None):
        self.implementation = implementation
        self.constructor_selector = constructor_selector
        self._compiled: Callable[[ResolutionContext], Any] | None = None
        self._lock = threading.Lock()

    def resolve(self, context: ResolutionContext, target_type: Any):
        if self.constructor_selector is None:
            return context.construct(self.implementation)

        compiled = self._compiled
        if compiled is None:
            with self._lock:
                if self._compiled is None:
                    self._compiled = context.registry.compiled_constructor(
                        self.implementation, self.constructor_selector
                    )
                compiled = self._compiled
        return compiled(context)

    def __repr__(self):
        return f"ConstructorResolver({self.implementation!r})"


class FunctionResolver(Resolver):
    __slots__ = ("factory",)

    def __init__(self, factory: Factory):
        if inspect.iscoroutinefunction(factory) or inspect.isasyncgenfunction(factory):
            raise InvalidFactoryError(factory)
        self.factory = factory

    def resolve(self, context: ResolutionContext, target_type: Any):
        return self.factory(ResolutionRequest(context, target_type))


class InstanceResolver(Resolver):
    __slots__ = ("instance",)

    def __init__(self, instance: Any):
        self.instance = instance

    def resolve(self, context: ResolutionContext, target_type: Any):
        return self.instance


class ArgumentResolver(Resolver):
    """
    Takes the value from the extra arguments passed to ``Registry.get`` / ``Registry.construct``.

    The first argument that is an instance of ``argument_type`` (the requested type when omitted)
    is used, passed through ``value_provider`` when one is given.
    """

    __slots__ = ("argument_type", "value_provider")

    def __init__(self, value_provider: ValueProvider | None = None, argument_type: type | None = None):
        self.value_provider = value_provider
        self.argument_type = argument_type

    def resolve(self, context: ResolutionContext, target_type: Any):
        argument_class = runtime_class(self.argument_type or target_type)
        if argument_class is None:
            return UNRESOLVED

        for argument in context.arguments:
            if isinstance(argument, argument_class):
                return self.value_provider(argument) if self.value_provider else argument

        return UNRESOLVED


class PredicatedResolver(Resolver):
    __slots__ = ("inner", "predicate")

    def __init__(self, predicate: RequestPredicate, inner: Resolver):
        self.predicate = predicate
        self.inner = inner

    def resolve(self, context: ResolutionContext, target_type: Any):
        if not self.predicate(ResolutionRequest(context, target_type)):
            return UNRESOLVED
        return self.inner.resolve(context, target_type)


class CachedResolver(Resolver):
    """
    Caches what ``inner`` produces under ``key_function(request)`` for the lifetime of the resolver,
    across every resolution context. The first value published for a key wins.
    """

    __slots__ = ("_lock", "_values", "inner", "key_function")

    def __init__(self, key_function: CacheKeyFunction, inner: Resolver):
        self.key_function = key_function
        self.inner = inner
        self._values: dict[Any, Any] = {}
        self._lock = threading.Lock()

    def resolve(self, context: ResolutionContext, target_type: Any):
        key = self.key_function(ResolutionRequest(context, target_type))
        value = self._values.get(key, UNRESOLVED)
        if value is not UNRESOLVED:
            return value

        value = self.inner.resolve(context, target_type)
        if value is UNRESOLVED:
            return value

        with self._lock:
            if key not in self._values:
                logger.debug("Caching %r under key %r", value, key)
            return self._values.setdefault(key, value)


class _Bindable(abc.ABC):
    @abc.abstractmethod
    def _add(self, resolver: Resolver) -> Binder: ...

    @property
    @abc.abstractmethod
    def binder(self) -> Binder: ...

    def to(self, target: Any, constructor_selector: ConstructorSelector | None = None) -> Binder:
        """
        Binds to a type (constructed reflectively), a factory ``fn(request)``, or a fixed instance.
        Use the explicit ``to_*`` methods when the target is ambiguous, e.g. a callable instance.
        """
        if runtime_class(target) is not None:
            return self.to_type(target, constructor_selector)
        if callable(target):
            return self.to_factory(target)
        return self.to_instance(target)

    def to_type(self, implementation: Any, constructor_selector: ConstructorSelector | None = None) -> Binder:
        reject_async_constructors(implementation)
        return self._add(ConstructorResolver(implementation, constructor_selector))

    def to_factory(self, factory: Factory) -> Binder:
        return self._add(FunctionResolver(factory))

    def to_instance(self, instance: Any) -> Binder:
        return self._add(InstanceResolver(instance))

    def inject_argument(
        self, value_provider: ValueProvider | None = None, argument_type: type | None = None
    ) -> Binder:
        return self._add(ArgumentResolver(value_provider, argument_type))

    def add_resolver(self, resolver: Resolver) -> Binder:
        return self._add(resolver)

    def when(self, predicate: RequestPredicate) -> BindingView:
        return BindingView(self.binder, wrappers=(*self._wrappers(), _predicate_wrapper(predicate)))

    def cache(self, key_function: CacheKeyFunction) -> BindingView:
        return BindingView(self.binder, wrappers=(*self._wrappers(), _cache_wrapper(key_function)))

    def _wrappers(self) -> tuple[Callable[[Resolver], Resolver], ...]:
        return ()


def _predicate_wrapper(predicate: RequestPredicate):
    def wrap(resolver: Resolver) -> Resolver:
        return PredicatedResolver(predicate, resolver)

    return wrap


def _cache_wrapper(key_function: CacheKeyFunction):
    def wrap(resolver: Resolver) -> Resolver:
        return CachedResolver(key_function, resolver)

    return wrap


class BindingView(_Bindable):
    """A binder seen through ``when`` / ``cache``: resolvers added here are gated or cached."""

    def __init__(self, binder: Binder, wrappers: Iterable[Callable[[Resolver], Resolver]]):
        self._binder = binder
        self._wrapper_chain = tuple(wrappers)

    @property
    def binder(self) -> Binder:
        return self._binder

    def _wrappers(self):
        return self._wrapper_chain

    def _add(self, resolver: Resolver) -> Binder:
        # the first wrapper declared ends up outermost
        for wrap in reversed(self._wrapper_chain):
            resolver = wrap(resolver)
        return self._binder.add_resolver(resolver)


class Binder(_Bindable):
    """
    Holds the resolver chain for one type. Resolvers are tried in the order they were added;
    when none of them resolves, the bound type itself is constructed.
    """

    def __init__(
        self,
        registry: Registry,
        service_type: Any,
        cache_policy: CachePolicy = CachePolicy.transient,
        *,
        implicit: bool = False,
    ):
        self.registry = registry
        self.service_type = service_type
        self.cache_policy = cache_policy
        self.is_implicit = implicit
        self._resolvers: tuple[Resolver, ...] = ()
        self._default_resolver: ConstructorResolver | None = None
        self._lock = threading.Lock()

    @property
    def binder(self) -> Binder:
        return self

    @property
    def resolvers(self) -> tuple[Resolver, ...]:
        return self._resolvers

    def add_resolver(self, resolver: Resolver) -> Binder:
        with self._lock:
            # copy on write, readers keep iterating the tuple they started with
            self._resolvers = (*self._resolvers, resolver)
        return self

    def _add(self, resolver: Resolver) -> Binder:
        return self.add_resolver(resolver)

    @property
    def default_resolver(self) -> ConstructorResolver:
        resolver = self._default_resolver
        if resolver is None:
            with self._lock:
                if self._default_resolver is None:
                    self._default_resolver = ConstructorResolver(self.service_type)
                resolver = self._default_resolver
        return resolver

    def promote(self, cache_policy: CachePolicy):
        with self._lock:
            self.is_implicit = False
            self.cache_policy = cache_policy

    def resolve(self, context: ResolutionContext, target_type: Any) -> Any:
        for resolver in self._resolvers:
            value = resolver.resolve(context, target_type)
            if value is not UNRESOLVED:
                return value

        return self.default_resolver.resolve(context, target_type)

    def __repr__(self):
        implicit = ", implicit" if self.is_implicit else ""
        return f"Binder({self.service_type!r}, {self.cache_policy.name}{implicit})"


class ResolutionContext:
    """
    State for one top-level request. Instances of the same type are shared across the
    object graph through the scoped cache unless their binder opts out with ``CachePolicy.never``.
    """

    def __init__(
        self,
        registry: Registry,
        arguments: Iterable[Any] = (),
        parent: ResolutionContext | None = None,
    ):
        self.registry = registry
        self.arguments = tuple(arguments)
        self.parent = parent
        self.cache: ChainMap[Any, Any] = parent.cache.new_child() if parent is not None else ChainMap()

    def resolve(self, service_type: type[TService]) -> TService:
        try:
            binder = self.registry.find_binder(service_type)
            shared = binder.cache_policy != CachePolicy.never

            if shared and service_type in self.cache:
                return self.cache[service_type]

            instance = binder.resolve(self, service_type)
        except ResolutionError as ex:
            ex.append(service_type)
            raise

        if shared:
            self.cache[service_type] = instance
        return instance

    def resolve_or_default(self, service_type: type[TService], default: Any) -> TService:
        if self.registry.has_binding(service_type):
            return self.resolve(service_type)
        return default

    def construct(self, service_type: type[TService], constructor_selector: ConstructorSelector | None = None) -> TService:
        return self.registry.compiled_constructor(service_type, constructor_selector)(self)

    def child(self) -> ResolutionContext:
        return ResolutionContext(self.registry, self.arguments, parent=self)

    def lazy(self, service_type: type[TService]) -> Callable[[], TService]:
        """
        Defers resolution until the returned function is called. Each call resolves in a
        child context that sees, but never writes to, this context's cache.
        """

        def resolve_later() -> TService:
            return self.child().resolve(service_type)

        return resolve_later


class Registry:
    def __init__(self, allow_implicit_registration: bool = True):
        self.allow_implicit_registration = allow_implicit_registration
        self._binders: dict[Any, Binder] = {}
        self._constructors: dict[Any, Callable[[ResolutionContext], Any]] = {}
        self._candidates: dict[Any, tuple[Any, ...]] = {}
        self._lock = threading.RLock()

        self.bind(Registry).to_instance(self)

    def bind(self, service_type: type[TService], cache_policy: CachePolicy = CachePolicy.transient) -> Binder:
        binder = self._binders.get(service_type)
        if binder is not None and not binder.is_implicit:
            return binder

        with self._lock:
            binder = self._binders.get(service_type)
            if binder is None:
                binder = Binder(self, service_type, cache_policy)
                self._binders[service_type] = binder
                logger.debug("Created binder for %s", service_type)
            elif binder.is_implicit:
                binder.promote(cache_policy)
                logger.debug("Promoted implicit binder for %s", service_type)
            return binder

    def _implicit_binder(self, service_type: Any) -> Binder:
        with self._lock:
            binder = self._binders.get(service_type)
            if binder is None:
                binder = Binder(self, service_type, implicit=True)
                self._binders[service_type] = binder
                logger.debug("Implicitly registered %s", service_type)
            return binder

    def candidate_types(self, service_type: Any) -> tuple[Any, ...]:
        candidates = self._candidates.get(service_type)
        if candidates is None:
            candidates = self._candidates.setdefault(service_type, candidate_types(service_type))
        return candidates

    def _find_existing_binder(self, service_type: Any, *, explicit_only: bool) -> Binder | None:
        for candidate in self.candidate_types(service_type):
            binder = self._binders.get(candidate)
            if binder is not None and not binder.is_implicit:
                return binder

        if explicit_only or not self.allow_implicit_registration:
            return None

        # implicit binders only stand in for the exact type they were created for
        return self._binders.get(service_type)

    def find_binder(self, service_type: Any) -> Binder:
        binder = self._find_existing_binder(service_type, explicit_only=False)
        if binder is not None:
            return binder

        if not self.allow_implicit_registration:
            raise UnregisteredTypeError(service_type)

        if runtime_class(service_type) is None:
            raise UnregisteredTypeError(service_type, "The type cannot be constructed implicitly")

        return self._implicit_binder(service_type)

    def has_binding(self, service_type: Any) -> bool:
        return self._find_existing_binder(service_type, explicit_only=True) is not None

    def compiled_constructor(
        self, service_type: Any, constructor_selector: ConstructorSelector | None = None
    ) -> Callable[[ResolutionContext], Any]:
        """
        The compiled construction procedure for ``service_type``. Procedures for the default
        selector are shared per type; those for any other selector are compiled for the caller to keep.
        """
        if constructor_selector is not None:
            return compile_plan(create_plan(service_type, constructor_selector))

        compiled = self._constructors.get(service_type)
        if compiled is None:
            with self._lock:
                compiled = self._constructors.get(service_type)
                if compiled is None:
                    compiled = compile_plan(create_plan(service_type))
                    self._constructors[service_type] = compiled
        return compiled

    def create_context(self, arguments: Iterable[Any] = ()) -> ResolutionContext:
        return ResolutionContext(self, arguments)

    def get(self, service_type: type[TService], *arguments: Any) -> TService:
        return self.create_context(arguments).resolve(service_type)

    def construct(
        self,
        service_type: type[TService],
        *arguments: Any,
        constructor_selector: ConstructorSelector | None = None,
    ) -> TService:
        context = self.create_context(arguments)
        try:
            return context.construct(service_type, constructor_selector)
        except ResolutionError as ex:
            ex.append(service_type)
            raise

    def call(self, fn: Callable[..., TReturn], *arguments: Any) -> TReturn:
        """Calls ``fn`` with every parameter resolved in a fresh context."""
        return invoke_plan(create_function_plan(fn), self.create_context(arguments))

    def deferred(self, service_type: type[TService]) -> Callable[..., TService]:
        def get_later(*arguments: Any) -> TService:
            return self.get(service_type, *arguments)

        return get_later


Factory = Callable[[ResolutionRequest], Any]
RequestPredicate = Callable[[ResolutionRequest], bool]
CacheKeyFunction = Callable[[ResolutionRequest], Any]
ValueProvider = Callable[[Any], Any]
