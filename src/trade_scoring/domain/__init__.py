"""Domain models shared across the engine."""
