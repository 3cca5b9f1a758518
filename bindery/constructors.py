"""Reflective construction.

A ``ConstructorPlan`` describes one public constructor of a concrete type: the
callable to invoke and, for each parameter, the type to resolve and the default
to fall back on. ``compile_plan`` turns a plan into a plain function
``construct(context)`` whose body is generated once, so repeated construction
does no signature inspection at all.
"""

import ast
import inspect
import logging
import types
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar, get_args, get_type_hints

from theutilitybelt.typing.generics import GenericTypeMap

from .errors import ConstructionError, InvalidFactoryError
from .type_filters import is_abstract, is_protocol, is_union, runtime_class
from .utils import EMPTY

logger = logging.getLogger(__name__)

_CONSTRUCTOR_MARK = "__bindery_constructor__"
_PRIVATE_MARK = "__bindery_private__"
_FILENAME = "<bindery-constructor>"
_FUNCTION_NAME = "construct"


def constructor(fn: Callable):
    """
    Marks a method as an alternative public constructor and turns it into a classmethod.

    >>> class Connection:
    ...     def __init__(self, url: str): ...
    ...
    ...     @constructor
    ...     def from_settings(cls, settings: Settings, pool: Pool): ...
    """
    setattr(fn, _CONSTRUCTOR_MARK, True)
    return classmethod(fn)


def private_constructor(fn: Callable):
    """Hides ``__init__`` from constructor selection."""
    setattr(fn, _PRIVATE_MARK, True)
    return fn


@dataclass(frozen=True)
class Parameter:
    name: str
    service_type: Any
    default: Any
    positional_only: bool = False

    @property
    def has_default(self):
        return self.default is not EMPTY


@dataclass(frozen=True)
class Constructor:
    owner: Any
    name: str
    factory: Callable
    parameters: tuple[Parameter, ...]

    def __len__(self):
        return len(self.parameters)


ConstructorSelector = Callable[[Sequence[Constructor]], Constructor | None]


@dataclass(frozen=True)
class ConstructorPlan:
    service_type: Any
    constructor: Constructor


def default_constructor_selector(constructors: Sequence[Constructor]) -> Constructor | None:
    # max keeps the first of equally long candidates
    return max(constructors, key=len, default=None)


def _is_async(fn: Callable):
    target = getattr(fn, "__func__", fn)
    return inspect.iscoroutinefunction(target) or inspect.isasyncgenfunction(target)


def _strip_optional(t: Any) -> Any:
    if not is_union(t):
        return t
    members = [a for a in get_args(t) if a is not type(None)]
    if len(members) == 1:
        return members[0]
    return t


def get_parameters(
    subject: Callable,
    hint_source: Callable | None,
    generic_mapping: GenericTypeMap | None = None,
) -> tuple[Parameter, ...]:
    try:
        signature = inspect.signature(subject)
    except ValueError:
        # builtins without an introspectable signature are called without arguments
        return ()

    try:
        hints = get_type_hints(hint_source) if hint_source is not None else {}
    except (NameError, TypeError) as ex:
        raise ConstructionError(subject, f"Unable to read type hints: {ex}") from ex

    parameters = []
    for name, param in signature.parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        default = EMPTY if param.default is inspect.Parameter.empty else param.default
        service_type = hints.get(name, EMPTY)

        if service_type is EMPTY and default is EMPTY:
            raise ConstructionError(subject, f"Parameter '{name}' has neither a type annotation nor a default")

        if isinstance(service_type, TypeVar) and generic_mapping is not None:
            service_type = generic_mapping.get(service_type, service_type)

        if service_type is not EMPTY:
            service_type = _strip_optional(service_type)

        parameters.append(
            Parameter(
                name=name,
                service_type=service_type,
                default=default,
                positional_only=param.kind == inspect.Parameter.POSITIONAL_ONLY,
            )
        )

    return tuple(parameters)


def _declared_constructors(cls: type) -> Iterator[tuple[str, Callable, Callable | None]]:
    init = cls.__init__
    if not getattr(init, _PRIVATE_MARK, False):
        yield "__init__", init, init if inspect.isfunction(init) else None

    seen_names: set[str] = set()
    for klass in cls.__mro__:
        for name, member in vars(klass).items():
            if name in seen_names:
                continue
            seen_names.add(name)
            if isinstance(member, classmethod) and getattr(member.__func__, _CONSTRUCTOR_MARK, False):
                yield name, member.__func__, member.__func__


def get_constructors(service_type: Any) -> list[Constructor]:
    """
    Lists the public constructors of a concrete type: ``__init__`` first, then every
    ``@constructor`` classmethod in declaration order, walking the MRO upward.

    ``__init__`` always leads, wherever it is declared in the class body, so when it
    ties on length with an alternative constructor the default selector picks ``__init__``.
    """
    cls = runtime_class(service_type)
    if cls is None or is_abstract(cls) or is_protocol(cls):
        return []

    generic_mapping = GenericTypeMap(service_type) if service_type is not cls else None

    constructors = []
    for name, _, hint_source in _declared_constructors(cls):
        if name == "__init__":
            factory, subject = service_type, cls
        else:
            factory = subject = getattr(cls, name)
        constructors.append(
            Constructor(
                owner=cls,
                name=name,
                factory=factory,
                parameters=get_parameters(subject, hint_source, generic_mapping),
            )
        )

    return constructors


def reject_async_constructors(service_type: Any):
    """Raises ``InvalidFactoryError`` when any public constructor of ``service_type`` is a coroutine."""
    cls = runtime_class(service_type)
    if cls is None or is_abstract(cls) or is_protocol(cls):
        return

    for name, fn, _ in _declared_constructors(cls):
        if _is_async(fn):
            raise InvalidFactoryError(getattr(cls, name), "Constructors must complete synchronously")


def create_plan(service_type: Any, constructor_selector: ConstructorSelector | None = None) -> ConstructorPlan:
    selector = constructor_selector or default_constructor_selector
    constructors = get_constructors(service_type)
    chosen = selector(constructors) if constructors else None

    if chosen is None:
        raise ConstructionError(service_type, "The type must have at least one public constructor")

    if _is_async(chosen.factory):
        raise InvalidFactoryError(chosen.factory, "Constructors must complete synchronously")

    return ConstructorPlan(service_type=service_type, constructor=chosen)


def create_function_plan(fn: Callable) -> ConstructorPlan:
    """A plan that calls a plain function with its parameters resolved."""
    if _is_async(fn):
        raise InvalidFactoryError(fn)

    hint_source = fn if inspect.isfunction(fn) or inspect.ismethod(fn) else type(fn).__call__
    function_constructor = Constructor(
        owner=fn,
        name=getattr(fn, "__name__", "__call__"),
        factory=fn,
        parameters=get_parameters(fn, hint_source),
    )
    return ConstructorPlan(service_type=fn, constructor=function_constructor)


def _is_context_parameter(parameter: Parameter):
    from .core import ResolutionContext

    return parameter.service_type is ResolutionContext


def _argument_value(parameter: Parameter, context: Any) -> Any:
    if _is_context_parameter(parameter):
        return context
    if parameter.service_type is EMPTY:
        return parameter.default
    if parameter.has_default:
        return context.resolve_or_default(parameter.service_type, parameter.default)
    return context.resolve(parameter.service_type)


def invoke_plan(plan: ConstructorPlan, context: Any) -> Any:
    """Calls the plan's factory once, resolving its arguments without generating code."""
    args = []
    kwargs = {}
    for parameter in plan.constructor.parameters:
        value = _argument_value(parameter, context)
        if parameter.positional_only:
            args.append(value)
        else:
            kwargs[parameter.name] = value
    return plan.constructor.factory(*args, **kwargs)


def _load(name: str):
    return ast.Name(id=name, ctx=ast.Load())


def _context_call(method: str, *args: ast.expr):
    return ast.Call(
        func=ast.Attribute(value=_load("context"), attr=method, ctx=ast.Load()),
        args=list(args),
        keywords=[],
    )


def _argument_expression(index: int, parameter: Parameter, generated_globals: dict[str, Any]) -> ast.expr:
    if _is_context_parameter(parameter):
        return _load("context")

    default_name = f"_d{index}"
    type_name = f"_t{index}"

    if parameter.service_type is EMPTY:
        generated_globals[default_name] = parameter.default
        return _load(default_name)

    generated_globals[type_name] = parameter.service_type

    if parameter.has_default:
        generated_globals[default_name] = parameter.default
        return _context_call("resolve_or_default", _load(type_name), _load(default_name))

    return _context_call("resolve", _load(type_name))


def _extract_function_code(module_code: types.CodeType, name: str) -> types.CodeType:
    for constant in module_code.co_consts:
        if isinstance(constant, types.CodeType) and constant.co_name == name:
            return constant
    raise RuntimeError(f"Unable to extract function code object for {name!r}")


def compile_plan(plan: ConstructorPlan) -> Callable[[Any], Any]:
    """
    Generates ``def construct(context): return _factory(<resolved arguments>)``.

    The result closes over nothing but the plan's constants and can be called
    concurrently from any number of threads.
    """
    generated_globals: dict[str, Any] = {"_factory": plan.constructor.factory}
    args: list[ast.expr] = []
    keywords: list[ast.keyword] = []

    for index, parameter in enumerate(plan.constructor.parameters):
        expression = _argument_expression(index, parameter, generated_globals)
        if parameter.positional_only:
            args.append(expression)
        else:
            keywords.append(ast.keyword(arg=parameter.name, value=expression))

    function_definition = ast.FunctionDef(
        name=_FUNCTION_NAME,
        args=ast.arguments(
            posonlyargs=[],
            args=[ast.arg(arg="context")],
            vararg=None,
            kwonlyargs=[],
            kw_defaults=[],
            kwarg=None,
            defaults=[],
        ),
        body=[ast.Return(value=ast.Call(func=_load("_factory"), args=args, keywords=keywords))],
        decorator_list=[],
        returns=None,
        type_comment=None,
    )
    module = ast.Module(body=[function_definition], type_ignores=[])
    ast.fix_missing_locations(module)

    module_code = compile(module, filename=_FILENAME, mode="exec")
    function_code = _extract_function_code(module_code, _FUNCTION_NAME)
    construct = types.FunctionType(function_code, dict(generated_globals), name=_FUNCTION_NAME)
    construct.__qualname__ = f"construct[{getattr(plan.constructor.owner, '__qualname__', plan.constructor.owner)}]"

    logger.debug(
        "Compiled constructor %s.%s with %d parameter(s)",
        plan.constructor.owner,
        plan.constructor.name,
        len(plan.constructor.parameters),
    )
    return construct
