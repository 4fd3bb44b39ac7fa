"""Relay engine — wires storage, pipeline services and background jobs."""

from __future__ import annotations

from hookrelay.engine.client import RelayEngine

__all__ = ["RelayEngine"]
