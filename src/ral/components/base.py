from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ral.ast_nodes import ValueType

Scalar = int | float | str


@dataclass(frozen=True)
class ComponentContext:
    """Per-voice facts a built-in may need while producing samples.

    ``seed`` is already specific to the voice; components mix in their call
    site so two calls in one voice never share a random stream.
    """
    sample_rate: int
    a4_freq: float = 440.0
    seed: int = 0
    sample_dir: Path | None = None


class Component:
    """A built-in unit generator.

    Subclasses declare their signature as class attributes and implement
    ``process``. Stateful components also implement ``create_state``; the
    voice runtime owns the returned object and hands it back on every call.
    """
    name: str = ""
    params: tuple[ValueType, ...] = ()
    returns: tuple[ValueType, ...] = (ValueType.FLOAT,)
    stateful: bool = False

    def create_state(self, ctx: ComponentContext, call_site: int) -> Any:
        return None

    def process(self, state: Any, args: list[Scalar], ctx: ComponentContext) -> tuple[Scalar, ...]:
        raise NotImplementedError

    @property
    def arity(self) -> int:
        return len(self.params)

    def signature(self) -> str:
        params = ", ".join(str(p) for p in self.params)
        returns = ", ".join(str(r) for r in self.returns)
        return f"{self.name}({params}) -> {returns}"
