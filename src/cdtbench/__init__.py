"""
cdtbench - Cache read benchmark for compression dictionary transport.

Drive a browser through cold and warm cache loads, gate every step,
and compare dictionary-compressed reads against the plain baseline.
"""

from cdtbench.config import BenchConfig, load_config
from cdtbench.orchestrator import BenchmarkOrchestrator, run_benchmark

__version__ = "0.1.0"
__all__ = [
    "BenchConfig",
    "BenchmarkOrchestrator",
    "__version__",
    "load_config",
    "run_benchmark",
]
