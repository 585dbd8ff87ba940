"""
Output — report artifacts, severity parsing and trend state.
"""

from marvinous.output.report import Severity, classify, write_report
from marvinous.output.state import PreviousSnapshot, load_previous, save_current

__all__ = [
    "Severity",
    "classify",
    "write_report",
    "PreviousSnapshot",
    "load_previous",
    "save_current",
]
