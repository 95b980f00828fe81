"""
Switchyard - Provider Reconciliation & Deployment Engine

Keeps one canonical registry of AI provider configurations and keeps the
configuration files of local coding CLIs in sync with it.

Features:
- Discover providers already configured in OpenCode, Claude Code, Codex,
  Gemini CLI and cc-switch
- Import them into a single registry without duplicates
- Probe candidate base URLs and pick the fastest healthy one
- Apply registry providers back to each tool's native config format

Quick Start:
    pip install -e .
    switchyard discover
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
