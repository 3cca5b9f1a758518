from collections.abc import Callable
from typing import Any, get_args

from .core import Registry, ResolutionRequest


def use_registered(service_type: Any):
    """
    A factory that resolves ``service_type`` in the current context, sharing its instance.

    >>> registry.bind(Reader).to_factory(use_registered(FileStore))
    >>> registry.bind(Writer).to_factory(use_registered(FileStore))
    """

    def factory(request: ResolutionRequest):
        return request.context.resolve(service_type)

    return factory


def use_argument(index: int):
    """
    A factory returning the extra argument at ``index`` of the top-level call.
    """

    def factory(request: ResolutionRequest):
        return request.arguments[index]

    return factory


def lazy_factory(request: ResolutionRequest) -> Callable[[], Any]:
    """
    Produces a zero-argument function for ``Callable[[], T]`` requests that resolves ``T`` when called.
    Binding ``Callable`` to this factory is the way to break dependency cycles.
    """
    args = get_args(request.target_type)
    if not args:
        raise TypeError(f"{request.target_type!r} does not say what it returns")
    return request.context.lazy(args[-1])


def bind_lazy_factories(registry: Registry) -> Registry:
    """
    Lets constructors ask for ``Callable[[], T]`` to receive a deferred resolver of ``T``.
    """
    registry.bind(Callable).to_factory(lazy_factory)
    return registry
