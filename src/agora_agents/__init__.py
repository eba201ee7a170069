"""
Agent-facing primitives for the Agora runtime.

The deliberation layer builds on top of ``agora_core`` provider clients and
the record store to run multi-agent sessions end to end.
"""

__all__ = ["deliberation"]
