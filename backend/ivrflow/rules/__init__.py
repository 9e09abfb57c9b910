"""Structural validation rules for call flows."""

from ivrflow.rules.engine import FlowValidator

__all__ = ["FlowValidator"]
