"""
Output Generation Package
Handles writing snapshot exports and generating reports.
"""

from .file_writer import FileWriter
from .report_generator import ReportGenerator

__all__ = ['FileWriter', 'ReportGenerator']
