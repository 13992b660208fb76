"""Application factory and lifespan wiring."""
