"""Application services composed by the ServiceContainer."""
