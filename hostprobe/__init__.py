"""hostprobe - diagnostic probes served over HTTP.

This package exposes named diagnostic probes (host facts, CPU, memory, load,
network interfaces, environment, inbound request metadata) over HTTP and
renders each response in the format the client asks for.
"""

__version__ = "1.0.0"
