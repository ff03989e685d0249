"""
SMI Pipeline Module.

Runs the full estimation and drought analysis chain on in-memory arrays.
"""
from smi.pipeline.runner import SmiInputs, SmiPipeline, SmiRunResult, run_smi

__all__ = [
    "SmiInputs",
    "SmiPipeline",
    "SmiRunResult",
    "run_smi",
]
