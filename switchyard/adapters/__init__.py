"""Config store adapters, one per external tool."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from switchyard.adapters.base import ConfigStoreAdapter, ScanResult
from switchyard.adapters.cc_switch import CcSwitchAdapter
from switchyard.adapters.claude_code import ClaudeCodeAdapter
from switchyard.adapters.codex import CodexAdapter
from switchyard.adapters.gemini import GeminiAdapter
from switchyard.adapters.opencode import OpenCodeAdapter
from switchyard.core.models import Target

ADAPTER_CLASSES = {
    Target.OPENCODE: OpenCodeAdapter,
    Target.CLAUDE_CODE: ClaudeCodeAdapter,
    Target.CODEX: CodexAdapter,
    Target.GEMINI: GeminiAdapter,
    Target.CC_SWITCH: CcSwitchAdapter,
}


def build_adapters(home: Path, project_path: Optional[Path] = None) -> Dict[Target, ConfigStoreAdapter]:
    """Instantiate every adapter against one home directory and project root."""
    return {target: cls(home, project_path) for target, cls in ADAPTER_CLASSES.items()}


__all__ = [
    "ADAPTER_CLASSES",
    "CcSwitchAdapter",
    "ClaudeCodeAdapter",
    "CodexAdapter",
    "ConfigStoreAdapter",
    "GeminiAdapter",
    "OpenCodeAdapter",
    "ScanResult",
    "build_adapters",
]
