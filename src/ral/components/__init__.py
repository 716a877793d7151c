"""Built-in unit generators and the registry that names them."""

from ral.components.base import Component, ComponentContext
from ral.components.registry import (
    ComponentRegistry, default_registry, get_component, list_components,
)

__all__ = [
    "Component",
    "ComponentContext",
    "ComponentRegistry",
    "default_registry",
    "get_component",
    "list_components",
]
