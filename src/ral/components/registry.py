from __future__ import annotations

from ral.components.base import Component
from ral.components.generators import Adsr, Noise, Oscil, Padsr, Sine
from ral.components.pitch import Mtof, Ntom
from ral.components.samples import Sample, WavPlayer


class ComponentRegistry:
    """Name -> built-in component table consulted by analyzer and runtime."""

    def __init__(self, components: list[Component] | None = None) -> None:
        self._components: dict[str, Component] = {}
        for component in components or []:
            self.register(component)

    def register(self, component: Component) -> None:
        if component.name in self._components:
            raise ValueError(f"Component '{component.name}' is already registered")
        self._components[component.name] = component

    def get(self, name: str) -> Component | None:
        return self._components.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._components

    def __iter__(self):
        return iter(self._components.values())

    def names(self) -> list[str]:
        return sorted(self._components)


_DEFAULT: ComponentRegistry | None = None


def default_registry() -> ComponentRegistry:
    """The registry holding every built-in, created on first use."""
    global _DEFAULT
    if _DEFAULT is None:
        _DEFAULT = ComponentRegistry([
            Mtof(), Ntom(),
            Sine(), Oscil(), Adsr(), Padsr(), Noise(),
            WavPlayer(), Sample(),
        ])
    return _DEFAULT


def get_component(name: str) -> Component | None:
    return default_registry().get(name)


def list_components() -> list[Component]:
    return list(default_registry())
