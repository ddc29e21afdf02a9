"""
Automation Module - turns agent replies into file mutations

Components:
- VirtualFileManager: in-memory versioned file store with preview composition
- AgentResponseParser: delimiter protocol parser applied to every agent reply
"""

from whiteninja.modules.automation.file_manager import (
    DiffSummary,
    FileEntry,
    PreviewBundle,
    VirtualFileManager,
    compute_line_diff,
    sanitize_path,
)
from whiteninja.modules.automation.response_parser import AgentResponseParser, ParseResult, response_parser

__all__ = [
    'DiffSummary',
    'FileEntry',
    'PreviewBundle',
    'VirtualFileManager',
    'compute_line_diff',
    'sanitize_path',
    'AgentResponseParser',
    'ParseResult',
    'response_parser',
]
