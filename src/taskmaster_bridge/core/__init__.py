"""Core data resolution layer: models, formats, channels and the client."""
