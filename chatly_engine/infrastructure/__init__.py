"""Collaborator contracts and cross-cutting infrastructure."""
