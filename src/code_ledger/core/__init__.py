"""Core service components."""

from code_ledger.core.config import Config, get_config
from code_ledger.core.orchestrator import Orchestrator, run_service
from code_ledger.core.status import StatusReport

__all__ = ["Config", "get_config", "Orchestrator", "run_service", "StatusReport"]
