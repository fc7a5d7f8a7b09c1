"""Operator-facing surfaces."""
