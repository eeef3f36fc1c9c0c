"""Shuffle game: token tracking under permuted slots, phase machine, and motion."""
