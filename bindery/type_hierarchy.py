"""Ordered fallback search over a type's hierarchy.

For a requested type the candidates are, in order:

1. the type itself
2. its generic definition, when the type is a parameterized alias (``Repo[int]`` -> ``Repo``)
3. each interface in the MRO, each preceded by its parameterized form when one is known
4. each remaining ancestor in MRO order, likewise, ending with ``object``

Typing plumbing (``Generic``, ``Protocol``, ``abc.ABC``) is never a candidate.
"""

from collections.abc import Iterator
from typing import Any, TypeVar

from theutilitybelt.typing.generics import GenericTypeMap, get_generic_bases

from .type_filters import is_interface, is_typing_plumbing, runtime_class


def _is_open(t: Any) -> bool:
    return bool(getattr(t, "__parameters__", ()))


def _is_class_alias(base: Any) -> bool:
    base_cls = runtime_class(base)
    return base_cls is not None and base is not base_cls and not is_typing_plumbing(base_cls)


def get_parameterized_bases(service_type: Any) -> dict[type, Any]:
    """
    Maps each generic ancestor class to the closed alias it is inherited as.
    Bases that stay open after filling in the request's type arguments are left out.

    >>> class Repo(Generic[T]): ...
    >>> class IntRepo(Repo[int]): ...
    >>> get_parameterized_bases(IntRepo)
    {Repo: Repo[int]}
    """
    cls = runtime_class(service_type)
    if cls is None:
        return {}

    found: dict[type, Any] = {}
    generic_mapping: GenericTypeMap | None = None

    for base in get_generic_bases(cls, _is_class_alias):
        base_cls = runtime_class(base)
        if base_cls is cls or base_cls in found:
            continue

        if _is_open(base):
            if generic_mapping is None:
                generic_mapping = GenericTypeMap(service_type)
            parameters: tuple[TypeVar, ...] = base.__parameters__
            base = base[tuple(generic_mapping.get(p, p) for p in parameters)]
            if _is_open(base):
                continue

        found[base_cls] = base

    return found


def iter_candidate_types(service_type: Any) -> Iterator[Any]:
    seen: set[Any] = set()

    def first_visit(t: Any):
        if t in seen:
            return False
        seen.add(t)
        return True

    if first_visit(service_type):
        yield service_type

    cls = runtime_class(service_type)
    if cls is None:
        return

    if first_visit(cls):
        yield cls

    parameterized = get_parameterized_bases(service_type)
    ancestors = [b for b in cls.__mro__[1:] if not is_typing_plumbing(b)]
    interfaces = [b for b in ancestors if b is not object and is_interface(b)]
    others = [b for b in ancestors if b not in interfaces]

    for base in interfaces + others:
        alias = parameterized.get(base)
        if alias is not None and first_visit(alias):
            yield alias
        if first_visit(base):
            yield base


def candidate_types(service_type: Any) -> tuple[Any, ...]:
    return tuple(iter_candidate_types(service_type))
