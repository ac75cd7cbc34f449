"""Core logic for beads-bridge. Nothing here prints or exits."""
