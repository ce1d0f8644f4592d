"""Update orchestration."""

from hotswap.orchestrator.engine import STEPS_PER_FILE, UpdateOrchestrator

__all__ = ["STEPS_PER_FILE", "UpdateOrchestrator"]
