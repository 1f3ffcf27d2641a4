"""Skillsync CLI: inspect and manage skills shared between coding agents."""
