"""Framework layer: structured logging and the source protocol."""
