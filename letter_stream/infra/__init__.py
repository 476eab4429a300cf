"""Infrastructure adapters: configuration, logging, HTTP and metrics."""
