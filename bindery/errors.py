from typing import Any


def _type_name(t: Any) -> str:
    if isinstance(t, type):
        return f"{t.__module__}.{t.__qualname__}"
    return repr(t)


class ResolutionError(Exception):
    def __init__(self, service_type: Any, reason: str):
        super().__init__(reason)
        self.service_type = service_type
        self.reason = reason
        self.resolution_chain: list[Any] = []

    def append(self, service_type: Any):
        # The innermost request is already named by the error itself.
        if not self.resolution_chain and service_type == self.service_type:
            return
        self.resolution_chain.append(service_type)

    @staticmethod
    def print_type(t: Any):
        content = f"resolving: {_type_name(t)}"
        width = len(content)
        top_border = "┌" + "─" * (width + 2) + "┐"
        bottom_border = "└" + "─" * (width + 2) + "┘"
        return f"{top_border}\n│ {content} │\n{bottom_border}"

    @property
    def message(self):
        return f"{self.reason} ({_type_name(self.service_type)})"

    @property
    def chain(self):
        arrow = "↑\n↑\n↑\n"
        items = [self.service_type, *self.resolution_chain]
        return arrow.join(f"{ResolutionError.print_type(t)}\n" for t in items)

    def __str__(self):
        if not self.resolution_chain:
            return self.message
        return f"\n{self.message}\n\nResolution chain:\n{self.chain}"


class UnregisteredTypeError(ResolutionError):
    def __init__(self, service_type: Any, reason: str | None = None):
        super().__init__(
            service_type,
            reason or "The type has not been registered and implicit registration is disabled",
        )


class ConstructionError(ResolutionError):
    pass


class InvalidFactoryError(ResolutionError):
    def __init__(self, factory: Any, reason: str = "Factories must complete synchronously"):
        super().__init__(factory, reason)
        self.factory = factory
