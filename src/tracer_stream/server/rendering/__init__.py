"""Progressive rendering state: buffers, epochs and the orchestrator."""

from .accumulation import AccumulationBuffer
from .generation import CancelToken, Generation
from .orchestrator import OrchestratorSnapshot, RenderOrchestrator

__all__ = [
    "AccumulationBuffer",
    "CancelToken",
    "Generation",
    "OrchestratorSnapshot",
    "RenderOrchestrator",
]
