import abc
import inspect
import types
from typing import Any, Generic, Protocol, Union, get_origin

from theutilitybelt.functional.predicate import predicate

TYPING_PLUMBING: frozenset[Any] = frozenset({Generic, Protocol, abc.ABC})


def _is_union(t: Any):
    origin = get_origin(t)
    return origin is Union or origin is types.UnionType


is_union = predicate(_is_union)


def runtime_class(t: Any) -> type | None:
    """
    The class behind a type or a parameterized alias (``Repo[int]`` -> ``Repo``).
    Returns None for typing constructs that have no class, such as unions and TypeVars.
    """
    if _is_union(t):
        return None
    origin = get_origin(t)
    candidate = origin if origin is not None else t
    return candidate if isinstance(candidate, type) else None


def _is_abstract(t: type):
    return inspect.isabstract(t)


is_abstract = predicate(_is_abstract)


def _is_protocol(t: type):
    return t is not Protocol and bool(getattr(t, "_is_protocol", False))


is_protocol = predicate(_is_protocol)


def _is_abc(t: type):
    return abc.ABC in t.__bases__


is_abc = predicate(_is_abc)

is_interface = is_abstract | is_protocol | is_abc
is_interface.__doc__ = "Abstract classes, protocols and direct ABC subclasses"


def _is_typing_plumbing(t: type):
    return t in TYPING_PLUMBING


is_typing_plumbing = predicate(_is_typing_plumbing)


def is_subclass_of(cls: type):
    def inner(t: type):
        return isinstance(t, type) and issubclass(t, cls)

    return predicate(inner)
