"""
White Ninja AI - multi-agent website build server
"""

__version__ = "0.2.0"
