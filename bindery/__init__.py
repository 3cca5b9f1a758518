"""Type-driven dependency resolution."""

from .constructors import (
    Constructor,
    ConstructorPlan,
    ConstructorSelector,
    Parameter,
    constructor,
    default_constructor_selector,
    get_constructors,
    private_constructor,
)
from .core import (
    ArgumentResolver,
    Binder,
    BindingView,
    CachedResolver,
    CachePolicy,
    ConstructorResolver,
    FunctionResolver,
    InstanceResolver,
    PredicatedResolver,
    Registry,
    ResolutionContext,
    ResolutionRequest,
    Resolver,
)
from .errors import ConstructionError, InvalidFactoryError, ResolutionError, UnregisteredTypeError
from .type_hierarchy import candidate_types, iter_candidate_types
from .utils import UNRESOLVED

__all__ = [
    "UNRESOLVED",
    "ArgumentResolver",
    "Binder",
    "BindingView",
    "CachePolicy",
    "CachedResolver",
    "ConstructionError",
    "Constructor",
    "ConstructorPlan",
    "ConstructorResolver",
    "ConstructorSelector",
    "FunctionResolver",
    "InstanceResolver",
    "InvalidFactoryError",
    "Parameter",
    "PredicatedResolver",
    "Registry",
    "ResolutionContext",
    "ResolutionError",
    "ResolutionRequest",
    "Resolver",
    "UnregisteredTypeError",
    "candidate_types",
    "constructor",
    "default_constructor_selector",
    "get_constructors",
    "iter_candidate_types",
    "private_constructor",
]
