"""Built-in probe functions.

Each probe gathers facts from psutil, platform or socket and flattens them
into string key/value pairs. They are plain synchronous functions; the
registry runs them on a worker thread.
"""

import os
import platform
import socket
import time
from typing import Any, Dict

import psutil

from hostprobe.probes.context import ProbeContext
from hostprobe.probes.registry import ProbeRegistry
from hostprobe.probes.result import Result, new_result


def status_probe(ctx: ProbeContext) -> Result:
    """Liveness check."""
    return new_result("status", data={"status": "ok"})


def env_probe(ctx: ProbeContext) -> Result:
    """Process environment variables."""
    return new_result("env", data=dict(os.environ))


def host_info_probe(ctx: ProbeContext) -> Result:
    """Hostname, OS, kernel and uptime."""
    boot_time = psutil.boot_time()
    uname = platform.uname()
    data: Dict[str, Any] = {
        "hostname": socket.gethostname(),
        "os": uname.system.lower(),
        "platform": platform.platform(),
        "kernel_version": uname.release,
        "kernel_arch": uname.machine,
        "boot_time": int(boot_time),
        "uptime": int(time.time() - boot_time),
        "procs": len(psutil.pids()),
        "python_version": platform.python_version(),
    }
    return new_result("host-info", data=data)


def cpu_info_probe(ctx: ProbeContext) -> Result:
    """CPU model, core counts and frequency."""
    data: Dict[str, Any] = {
        "model_name": platform.processor() or platform.machine(),
        "logical_cores": psutil.cpu_count(logical=True),
        "physical_cores": psutil.cpu_count(logical=False),
        "percent": psutil.cpu_percent(interval=None),
    }
    freq = psutil.cpu_freq()
    # Not every platform reports a frequency
    if freq is not None:
        data["mhz"] = freq.current
        data["mhz_min"] = freq.min
        data["mhz_max"] = freq.max
    return new_result("cpu-info", data=data)


def load_avg_probe(ctx: ProbeContext) -> Result:
    """1, 5 and 15 minute load averages."""
    load1, load5, load15 = psutil.getloadavg()
    return new_result(
        "load-avg", data={"load1": load1, "load5": load5, "load15": load15}
    )


def memory_info_probe(ctx: ProbeContext) -> Result:
    """Virtual memory statistics."""
    info = psutil.virtual_memory()
    summary = f"Total: {info.total}, Free:{info.free}, UsedPercent:{info.percent:f}%"
    return new_result("memory-info", summary=summary, data=info._asdict())


def network_info_probe(ctx: ProbeContext) -> Result:
    """One entry per network interface with its state and addresses."""
    stats = psutil.net_if_stats()
    data: Dict[str, str] = {}
    for name, addrs in psutil.net_if_addrs().items():
        hardware_addr = ""
        ip_addrs = []
        for addr in addrs:
            if addr.family == psutil.AF_LINK:
                hardware_addr = addr.address
            elif addr.family in (socket.AF_INET, socket.AF_INET6):
                ip_addrs.append(
                    f"{addr.address}/{addr.netmask}" if addr.netmask else addr.address
                )
        stat = stats.get(name)
        flags = "up" if stat is not None and stat.isup else "down"
        mtu = stat.mtu if stat is not None else 0
        data[name] = (
            f"Flags:{flags} MTU:{mtu} HardwareAddr:{hardware_addr} "
            f"Addrs:[{' '.join(ip_addrs)}]"
        )
    return new_result("network-info", data=data)


def request_info_probe(ctx: ProbeContext) -> Result:
    """Remote address and headers of the request that triggered the probe."""
    data: Dict[str, str] = {}
    request = ctx.request
    if request is not None:
        data["RemoteAddr"] = request.remote_addr
        for key, values in request.headers.items():
            canonical = "-".join(part.capitalize() for part in key.split("-"))
            if len(values) == 1:
                value = values[0]
            else:
                value = f"[{' '.join(values)}]"
            data["Header" + canonical] = value
    return new_result("request-info", data=data)


BUILTIN_PROBES = {
    "status": status_probe,
    "env": env_probe,
    "host-info": host_info_probe,
    "cpu-info": cpu_info_probe,
    "load-avg": load_avg_probe,
    "network-info": network_info_probe,
    "memory-info": memory_info_probe,
    "request-info": request_info_probe,
}


def register_builtin_probes(registry: ProbeRegistry) -> ProbeRegistry:
    """Register every built-in probe on the given registry and return it."""
    for name, fn in BUILTIN_PROBES.items():
        registry.register(name, fn)
    return registry
