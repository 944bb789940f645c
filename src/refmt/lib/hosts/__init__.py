"""Target host implementations."""

from refmt.lib.hosts.files import FileHost
from refmt.lib.hosts.memory import InMemoryHost

__all__ = ["FileHost", "InMemoryHost"]
