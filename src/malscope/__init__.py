# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""malscope - Malware scan lifecycle and analysis aggregation engine."""

__version__ = "0.1.0"

from malscope.models.scan import Scan
from malscope.scanner.engine import ScanEngine
from malscope.scanner.pipeline import AnalysisPipeline

__all__ = [
    "AnalysisPipeline",
    "Scan",
    "ScanEngine",
    "__version__",
]
