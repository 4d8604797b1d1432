"""Codex CLI - A local, file-backed hierarchical key-value store.
Dot-notation paths, per-value AES-256-GCM encryption and diff-aware imports.
"""

__version__ = "1.0.0"
