"""Probe registry, context and result types.

Example:
    from hostprobe.probes import ProbeRegistry, ProbeContext, new_result

    registry = ProbeRegistry()
    registry.register("status", lambda ctx: new_result("status", data={"status": "ok"}))
    result = await registry.dispatch(ProbeContext("REQ-1"), "status")
"""

from hostprobe.probes.builtin import BUILTIN_PROBES, register_builtin_probes
from hostprobe.probes.context import ProbeContext, RequestMetadata
from hostprobe.probes.registry import DispatchPolicy, ProbeFunction, ProbeRegistry
from hostprobe.probes.result import Result, new_result

__all__ = [
    "BUILTIN_PROBES",
    "DispatchPolicy",
    "ProbeContext",
    "ProbeFunction",
    "ProbeRegistry",
    "RequestMetadata",
    "Result",
    "new_result",
    "register_builtin_probes",
]
