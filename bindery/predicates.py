from typing import Any, get_args

from theutilitybelt.functional.predicate import predicate

from .core import ResolutionRequest
from .type_filters import runtime_class


def requested_type_is(service_type: Any):
    """
    Holds when the type being resolved is exactly ``service_type``
    """

    def _requested_type_is(request: ResolutionRequest):
        return request.target_type == service_type

    return predicate(_requested_type_is)


def requested_type_is_subclass_of(cls: type):
    """
    Holds when the class behind the type being resolved is a subclass of ``cls``
    """

    def _requested_type_is_subclass_of(request: ResolutionRequest):
        requested_class = runtime_class(request.target_type)
        return requested_class is not None and issubclass(requested_class, cls)

    return predicate(_requested_type_is_subclass_of)


def has_generic_args(*args: Any):
    """
    Holds when the type being resolved is parameterized with exactly ``args``

    >>> registry.bind(Repo).when(has_generic_args(int)).to(IntRepo)
    >>> registry.get(Repo[int])  # IntRepo
    """

    def _has_generic_args(request: ResolutionRequest):
        return get_args(request.target_type) == args

    return predicate(_has_generic_args)


def has_argument_of_type(cls: type):
    """
    Holds when one of the extra arguments given to the top-level call is an instance of ``cls``
    """

    def _has_argument_of_type(request: ResolutionRequest):
        return any(isinstance(a, cls) for a in request.arguments)

    return predicate(_has_argument_of_type)


def has_argument_matching(filter: Any):
    """
    Holds when any extra argument satisfies ``filter``
    """

    def _has_argument_matching(request: ResolutionRequest):
        return any(filter(a) for a in request.arguments)

    return predicate(_has_argument_matching)
