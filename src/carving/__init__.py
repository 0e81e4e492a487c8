"""
Unallocated space carving pipeline.

Runs an external file carving engine over unallocated space units, parses
the engine's DFXML report and files the recovered items into case storage.
"""

__version__ = "0.1.0"
