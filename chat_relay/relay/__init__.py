"""Chat-turn relay: authenticate, assemble context, stream, and persist."""
