"""
Core backend primitives for the Agora runtime.

Modules under ``agora_core`` provide shared infrastructure for the
deliberation orchestrator: provider clients, provider profiles, the record
store and configuration.
"""

__all__ = ["llm"]
