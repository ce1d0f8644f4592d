"""Process lifecycle control for executables being updated."""

from hotswap.process.controller import DEFAULT_GRACE_SECONDS, ProcessController, process_key

__all__ = ["DEFAULT_GRACE_SECONDS", "ProcessController", "process_key"]
