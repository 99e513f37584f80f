"""ProbeRegistry for registering and dispatching probe functions."""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Union

from hostprobe.errors import (
    ProbeFailedError,
    ProbeNotFoundError,
    RequestCancelledError,
)
from hostprobe.probes.context import ProbeContext
from hostprobe.probes.locking import ReadWriteLock
from hostprobe.probes.result import Result, new_result

logger = logging.getLogger(__name__)

ProbeFunction = Callable[[ProbeContext], Union[Result, Awaitable[Result]]]


class DispatchPolicy(str, Enum):
    """What dispatching all probes does when one of them fails."""

    # Abort the whole batch and surface the first failure.
    FAIL_FAST = "fail_fast"
    # Report each failure as its own Result next to the successful ones.
    COLLECT = "collect"


class ProbeRegistry:
    """Registry mapping probe names to probe functions.

    Registration takes an exclusive lock; dispatches share a read lock and
    work on a snapshot of the mapping, so they never see a half-applied
    registration. Re-registering a name replaces the previous function.

    Example:
        registry = ProbeRegistry()
        registry.register("status", lambda ctx: new_result("status", data={"status": "ok"}))
        result = await registry.dispatch(ProbeContext("REQ-1"), "status")
    """

    def __init__(self, policy: Union[DispatchPolicy, str] = DispatchPolicy.FAIL_FAST):
        self._probes: Dict[str, ProbeFunction] = {}
        self._lock = ReadWriteLock()
        self.policy = DispatchPolicy(policy)

    def register(self, name: str, fn: ProbeFunction) -> None:
        """Register a probe function under a name.

        Args:
            name: Unique probe name. The empty name is reserved for "all probes".
            fn: Callable taking a ProbeContext and returning a Result, either
                directly or as a coroutine.

        Raises:
            ValueError: If name is empty.
            TypeError: If fn is not callable.
        """
        if not name:
            raise ValueError("Probe name must not be empty")
        if not callable(fn):
            raise TypeError(f"Probe '{name}' must be callable, got {type(fn).__name__}")
        with self._lock.write_locked():
            replaced = name in self._probes
            self._probes[name] = fn
        if replaced:
            logger.debug(f"Replaced probe: {name}")
        else:
            logger.debug(f"Registered probe: {name}")

    def get(self, name: str) -> Optional[ProbeFunction]:
        with self._lock.read_locked():
            return self._probes.get(name)

    def names(self) -> List[str]:
        """Registered probe names in ascending order."""
        with self._lock.read_locked():
            return sorted(self._probes)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._probes)

    def __contains__(self, name: object) -> bool:
        with self._lock.read_locked():
            return name in self._probes

    async def dispatch(
        self, ctx: ProbeContext, name: str = ""
    ) -> Union[Result, List[Result]]:
        """Run one probe by name, or every probe when name is empty.

        Args:
            ctx: Request-scoped context passed to each probe function.
            name: Probe to run. Empty runs all registered probes.

        Returns:
            The probe's Result, or for the empty name a list of Results
            sorted by Result.name.

        Raises:
            ProbeNotFoundError: If name is not registered.
            ProbeFailedError: If the probe function fails (for all probes,
                only under DispatchPolicy.FAIL_FAST).
            RequestCancelledError: If ctx was cancelled before a probe ran.
        """
        if name:
            fn = self.get(name)
            if fn is None:
                logger.debug(f"Probe not found: {name}")
                raise ProbeNotFoundError(name)
            return await self._invoke(ctx, name, fn)

        with self._lock.read_locked():
            snapshot = sorted(self._probes.items())

        results: List[Result] = []
        for probe_name, fn in snapshot:
            try:
                results.append(await self._invoke(ctx, probe_name, fn))
            except ProbeFailedError as exc:
                if self.policy is DispatchPolicy.FAIL_FAST:
                    logger.error(f"Probe {probe_name} failed, aborting dispatch: {exc}")
                    raise
                logger.warning(f"Probe {probe_name} failed: {exc}")
                results.append(
                    new_result(
                        probe_name,
                        summary=f"ERROR: {exc.message}",
                        data={"error": exc.message, "status": exc.status},
                    )
                )
        results.sort(key=lambda r: r.name)
        return results

    async def _invoke(self, ctx: ProbeContext, name: str, fn: ProbeFunction) -> Result:
        ctx.raise_if_cancelled()
        try:
            if inspect.iscoroutinefunction(fn):
                result = await fn(ctx)
            else:
                # Probe functions may block on the OS; keep them off the loop
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(None, fn, ctx)
        except RequestCancelledError:
            raise
        except Exception as exc:
            raise ProbeFailedError(name, exc) from exc

        if not isinstance(result, Result):
            raise ProbeFailedError(
                name,
                TypeError(
                    f"Probe '{name}' returned {type(result).__name__}, expected Result"
                ),
            )
        return result
