"""Study dashboard core: Canvas sync, local caches, aggregation and the course assistant."""

__version__ = "0.1.0"
