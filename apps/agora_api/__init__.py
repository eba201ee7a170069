"""
Lightweight helpers for exposing the Agora deliberation runtime over HTTP.

Framework adapters import the sessions facade defined here so endpoints do
not reach into the orchestrator directly.
"""

from .sessions import SessionsAPI

__all__ = ["SessionsAPI"]
