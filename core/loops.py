"""Background loops - per-agent reflection timers and decay ticks."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict

from utils.errors import log_error
from utils.logging import log

__all__ = ["AgentTimers", "DecayScheduler", "ReflectionScheduler"]


class AgentTimers:
    """One cancellable timer task per agent id.

    `reset(agent_id)` cancels the running timer for that agent and starts a
    fresh one. After `delay_s` the callback runs; with `repeat` it keeps
    running every `delay_s` until cancelled. Cancelling never affects other
    agents.
    """

    label = "Timer"
    repeat = False

    def __init__(self, delay_s: float, callback: Callable[[str], Awaitable[object]]):
        self.delay_s = float(delay_s)
        self._callback = callback
        self._tasks: Dict[str, asyncio.Task] = {}

    def reset(self, agent_id: str) -> None:
        self.cancel(agent_id)
        self._tasks[agent_id] = asyncio.create_task(
            self._run(agent_id),
            name=f"{self.label.lower()}-{agent_id}",
        )

    def cancel(self, agent_id: str) -> None:
        task = self._tasks.pop(agent_id, None)
        # A callback re-arming its own timer must not cancel itself
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def pending(self, agent_id: str) -> bool:
        task = self._tasks.get(agent_id)
        return task is not None and not task.done()

    async def cancel_all(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, agent_id: str) -> None:
        try:
            while True:
                await asyncio.sleep(self.delay_s)
                try:
                    await self._callback(agent_id)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    log_error(f"[{self.label}] {agent_id} failed", e)
                if not self.repeat:
                    break
        finally:
            current = self._tasks.get(agent_id)
            if current is asyncio.current_task():
                self._tasks.pop(agent_id, None)


class ReflectionScheduler(AgentTimers):
    """Quiet-period timer: reflection runs once the agent has been idle for `delay_s`."""

    label = "Reflect"

    @property
    def quiet_period_s(self) -> float:
        return self.delay_s


class DecayScheduler(AgentTimers):
    """Repeating decay tick per agent, restarted on every turn."""

    label = "Decay"
    repeat = True

    async def cancel_all(self) -> None:
        if self._tasks:
            log(f"[Decay] Stopping {len(self._tasks)} decay timer(s).")
        await super().cancel_all()
