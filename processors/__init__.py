"""
Processors Package - Rendering extraction results
"""

from .output_generator import OutputGenerator

__all__ = ['OutputGenerator']
