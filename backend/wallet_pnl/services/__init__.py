"""Collaborators that feed the P&L engine."""
