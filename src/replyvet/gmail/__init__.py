"""Gmail delivery for auto-replies."""
