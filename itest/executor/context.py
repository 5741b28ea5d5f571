"""Execution context — the explicit replacement for ambient globals."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional

from itest.backend.session import SessionProvider
from itest.models.config import DEFAULT_BASE_URL, RunnerConfig


def _freeze(variables: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(variables))


@dataclass(frozen=True)
class ExecutionContext:
    """Immutable inputs shared by translation and dispatch.

    ``variables`` resolves ``%NAME%`` placeholders and goto variable lookups;
    ``session_provider`` hands out backend sessions per workflow.
    """
    variables: Mapping[str, str] = field(default_factory=lambda: _freeze({}))
    base_url: str = DEFAULT_BASE_URL
    session_provider: Optional[SessionProvider] = None

    def __post_init__(self) -> None:
        if not isinstance(self.variables, MappingProxyType):
            object.__setattr__(self, "variables", _freeze(self.variables))

    @classmethod
    def from_environment(
        cls,
        config: RunnerConfig | None = None,
        session_provider: SessionProvider | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "ExecutionContext":
        """Snapshot the process environment (plus config variables) once."""
        config = config or RunnerConfig()
        env = dict(os.environ if environ is None else environ)
        env.update(config.variables)
        base_url = env.get("TEST_BASE_URL") or config.base_url
        return cls(variables=env, base_url=base_url, session_provider=session_provider)

    def with_variables(self, **extra: str) -> "ExecutionContext":
        merged = dict(self.variables)
        merged.update(extra)
        return replace(self, variables=merged)

    def with_session_provider(self, provider: SessionProvider) -> "ExecutionContext":
        return replace(self, session_provider=provider)
