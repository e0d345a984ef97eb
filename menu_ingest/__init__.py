"""
Menu upload ingestion: turns uploaded menu files into reviewable dish suggestions.
"""
__version__ = "0.1.0"
