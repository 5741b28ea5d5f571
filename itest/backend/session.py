"""Collaborator protocols — the automation session and its provider.

The runner only talks to these interfaces; ``playwright_backend`` is one
implementation, tests use ``AsyncMock`` fakes.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

DEFAULT_ACT_TIMEOUT_MS = 30000
DEFAULT_ACT_RETRIES = 2
AGENT_MAX_STEPS = 20


@runtime_checkable
class Session(Protocol):
    async def navigate(self, url: str) -> None: ...

    async def go_back(self) -> None: ...

    async def reload(self) -> None: ...

    async def title(self) -> str: ...

    async def act(
        self,
        text: str,
        timeout: int = DEFAULT_ACT_TIMEOUT_MS,
        retries: int = DEFAULT_ACT_RETRIES,
        variables: Optional[Mapping[str, str]] = None,
    ) -> Any: ...

    async def extract(self, target: str, shape_hint: str = "auto") -> Any: ...

    async def observe(self, target: str) -> list[Any]: ...

    async def run_agent_task(
        self, instruction: str, max_steps: int = AGENT_MAX_STEPS, feedback: bool = False,
    ) -> Any: ...


@runtime_checkable
class SessionProvider(Protocol):
    async def get_session(self, workflow_id: str) -> Session: ...

    async def close_all(self) -> None: ...
