"""Infrastructure layer - Configuration, logging and persistence adapters."""
