"""Wagering: the reactive bet store and the panel intents that drive it."""
