from abc import ABC, abstractmethod
from typing import Generic, TypeVar, Union

import pytest
from assertive import assert_that, is_exact_type, is_same_instance_as, raises_exception

from bindery import (
    Binder,
    ConstructionError,
    InvalidFactoryError,
    Registry,
    UnregisteredTypeError,
    private_constructor,
)


def test_implicit_registration():
    class SimpleClass:
        pass

    registry = Registry()
    simple = registry.get(SimpleClass)

    assert_that(simple).matches(is_exact_type(SimpleClass))


def test_each_get_creates_a_new_instance():
    class SimpleClass:
        pass

    registry = Registry()

    assert registry.get(SimpleClass) is not registry.get(SimpleClass)


def test_interface_registration():
    class ISimpleClass(ABC):
        @abstractmethod
        def run(self): ...

    class SimpleClass(ISimpleClass):
        def run(self):
            pass

    registry = Registry()
    registry.bind(ISimpleClass).to(SimpleClass)

    assert_that(registry.get(ISimpleClass)).matches(is_exact_type(SimpleClass))


def test_simple_injection():
    class SimpleClass:
        pass

    class InjectionClass:
        def __init__(self, simple_class: SimpleClass):
            self.simple_class = simple_class

    registry = Registry()
    injection = registry.get(InjectionClass)

    assert_that(injection.simple_class).matches(is_exact_type(SimpleClass))


def test_unregistered_type_fails_when_implicit_registration_is_disabled():
    class SimpleClass:
        pass

    registry = Registry(allow_implicit_registration=False)

    with raises_exception(UnregisteredTypeError):
        registry.get(SimpleClass)


def test_bound_types_still_resolve_when_implicit_registration_is_disabled():
    class Dependency:
        pass

    class Service:
        def __init__(self, dependency: Dependency):
            self.dependency = dependency

    registry = Registry(allow_implicit_registration=False)
    registry.bind(Service)
    registry.bind(Dependency)

    service = registry.get(Service)

    assert_that(service.dependency).matches(is_exact_type(Dependency))


def test_implicit_registration_toggle_applies_to_types_already_seen():
    class SimpleClass:
        pass

    registry = Registry()
    registry.get(SimpleClass)
    registry.allow_implicit_registration = False

    with raises_exception(UnregisteredTypeError):
        registry.get(SimpleClass)


def test_class_without_public_constructor_fails():
    class ClassWithoutConstructor:
        @private_constructor
        def __init__(self):
            pass

    registry = Registry()

    with raises_exception(ConstructionError):
        registry.get(ClassWithoutConstructor)


def test_construction_error_recurs_on_every_attempt():
    class ClassWithoutConstructor:
        @private_constructor
        def __init__(self):
            pass

    registry = Registry()

    for _ in range(3):
        with raises_exception(ConstructionError):
            registry.get(ClassWithoutConstructor)


def test_abstract_class_without_binding_fails_to_construct():
    class Abstract(ABC):
        @abstractmethod
        def run(self): ...

    registry = Registry()

    with raises_exception(ConstructionError):
        registry.get(Abstract)


def test_unions_cannot_be_registered_implicitly():
    class A:
        pass

    class B:
        pass

    registry = Registry()

    with raises_exception(UnregisteredTypeError):
        registry.get(Union[A, B])


def test_predicated_resolver():
    class ISomeInterface(ABC):
        pass

    class SomeClass1(ISomeInterface):
        pass

    class SomeClass2(ISomeInterface):
        pass

    registry = Registry()
    registry.bind(ISomeInterface).when(lambda _: False).to(SomeClass1)
    registry.bind(ISomeInterface).when(lambda _: True).to(SomeClass2)

    assert_that(registry.get(ISomeInterface)).matches(is_exact_type(SomeClass2))


def test_bind_returns_the_same_binder_for_a_type():
    class A:
        pass

    registry = Registry()
    binder = registry.bind(A)

    assert_that(binder).matches(is_exact_type(Binder))
    assert_that(registry.bind(A)).matches(is_same_instance_as(binder))


def test_implicit_binder_is_promoted_by_bind():
    class A:
        pass

    registry = Registry()
    registry.get(A)
    implicit_binder = registry.find_binder(A)

    bound = registry.bind(A)

    assert_that(bound).matches(is_same_instance_as(implicit_binder))
    assert_that(bound.is_implicit).matches(False)
    assert_that(registry.has_binding(A)).matches(True)


def test_registry_resolves_itself():
    class NeedsRegistry:
        def __init__(self, registry: Registry):
            self.registry = registry

    registry = Registry()

    assert_that(registry.get(NeedsRegistry).registry).matches(is_same_instance_as(registry))


def test_exact_binding_beats_supertype_binding():
    class Animal:
        pass

    class Dog(Animal):
        pass

    class Puppy(Dog):
        pass

    registry = Registry()
    registry.bind(Animal).to_instance("animal")
    registry.bind(Dog).to_instance("dog")

    assert_that(registry.get(Puppy)).matches("dog")
    assert_that(registry.get(Animal)).matches("animal")


def test_supertype_binder_receives_the_requested_type():
    class Animal:
        pass

    class Dog(Animal):
        pass

    registry = Registry()
    registry.bind(Animal).to_factory(lambda request: request.target_type())

    assert_that(registry.get(Dog)).matches(is_exact_type(Dog))


def test_supertype_binder_without_resolvers_constructs_its_own_type():
    class Animal:
        pass

    class Dog(Animal):
        pass

    registry = Registry()
    registry.bind(Animal)

    assert_that(registry.get(Dog)).matches(is_exact_type(Animal))


def test_generic_definition_binding_beats_object_binding():
    T = TypeVar("T")

    class Box(Generic[T]):
        pass

    class Other:
        pass

    registry = Registry()
    registry.bind(object).to_instance("object")
    registry.bind(Box).to_factory(lambda request: f"box of {request.target_type.__args__[0].__name__}")

    assert_that(registry.get(Box[int])).matches("box of int")
    assert_that(registry.get(Other)).matches("object")


def test_interface_binding_is_found_from_the_implementation():
    class IRepository(ABC):
        @abstractmethod
        def load(self): ...

    class SqlRepository(IRepository):
        def load(self):
            return "sql"

    class CachedSqlRepository(SqlRepository):
        pass

    registry = Registry()
    registry.bind(IRepository).to_factory(lambda request: "from interface")
    registry.bind(object).to_instance("from object")

    assert_that(registry.get(CachedSqlRepository)).matches("from interface")


def test_implicit_binders_do_not_satisfy_subtypes():
    class Animal:
        pass

    class Dog(Animal):
        pass

    registry = Registry()
    registry.get(Animal)

    assert_that(registry.get(Dog)).matches(is_exact_type(Dog))


def test_construct_bypasses_bindings():
    class Service:
        pass

    registry = Registry()
    registry.bind(Service).to_instance("not a service")

    assert_that(registry.construct(Service)).matches(is_exact_type(Service))


def test_construct_resolves_parameters_through_bindings():
    class Dependency:
        pass

    class FakeDependency(Dependency):
        pass

    class Service:
        def __init__(self, dependency: Dependency):
            self.dependency = dependency

    registry = Registry()
    registry.bind(Dependency).to(FakeDependency)

    assert_that(registry.construct(Service).dependency).matches(is_exact_type(FakeDependency))


def test_extra_arguments_are_injected():
    class Greeting:
        def __init__(self, name: str):
            self.name = name

    registry = Registry()
    registry.bind(str).inject_argument()

    assert_that(registry.get(Greeting, "world").name).matches("world")
    assert_that(registry.construct(Greeting, "there").name).matches("there")


def test_extra_arguments_through_a_value_provider():
    class User:
        def __init__(self, user_id: int):
            self.user_id = user_id

    class Audit:
        def __init__(self, user_id: int):
            self.user_id = user_id

    registry = Registry()
    registry.bind(int).inject_argument(lambda user: user.user_id, argument_type=User)

    audit = registry.construct(Audit, User(42))

    assert_that(audit.user_id).matches(42)


def test_missing_extra_argument_falls_through_to_next_resolver():
    class Greeting:
        def __init__(self, name: str):
            self.name = name

    registry = Registry()
    registry.bind(str).inject_argument().to_instance("fallback")

    assert_that(registry.get(Greeting).name).matches("fallback")
    assert_that(registry.get(Greeting, "given").name).matches("given")


def test_deferred_gets_on_every_call():
    class Session:
        pass

    registry = Registry()
    get_session = registry.deferred(Session)

    first = get_session()
    second = get_session()

    assert_that(first).matches(is_exact_type(Session))
    assert first is not second


def test_call_resolves_function_parameters():
    class Clock:
        pass

    class Calendar:
        pass

    registry = Registry()

    def schedule(clock: Clock, calendar: Calendar, label: str = "default"):
        return clock, calendar, label

    clock, calendar, label = registry.call(schedule)

    assert_that(clock).matches(is_exact_type(Clock))
    assert_that(calendar).matches(is_exact_type(Calendar))
    assert_that(label).matches("default")


def test_call_rejects_async_functions():
    registry = Registry()

    async def schedule():
        pass

    with raises_exception(InvalidFactoryError):
        registry.call(schedule)


def test_error_reports_the_resolution_chain():
    class Broken:
        @private_constructor
        def __init__(self):
            pass

    class Middle:
        def __init__(self, broken: Broken):
            self.broken = broken

    class Top:
        def __init__(self, middle: Middle):
            self.middle = middle

    registry = Registry()

    with pytest.raises(ConstructionError) as error:
        registry.get(Top)

    assert_that(error.value.service_type).matches(Broken)
    assert_that(error.value.resolution_chain).matches([Middle, Top])
    assert "Resolution chain" in str(error.value)


def test_ancestor_binding_added_after_implicit_registration_wins():
    class Base:
        pass

    class Derived(Base):
        pass

    class Replacement(Base):
        pass

    registry = Registry()
    registry.get(Derived)
    registry.bind(Base).to(Replacement)

    assert_that(registry.get(Derived)).matches(is_exact_type(Replacement))


def test_interface_binding_added_after_implicit_registration_wins():
    class IClock(ABC):
        @abstractmethod
        def now(self): ...

    class SystemClock(IClock):
        def now(self):
            return "system"

    registry = Registry()
    registry.get(SystemClock)
    registry.bind(IClock).to_instance("fixed clock")

    assert_that(registry.get(SystemClock)).matches("fixed clock")
    assert_that(registry.find_binder(SystemClock).service_type).matches(IClock)
