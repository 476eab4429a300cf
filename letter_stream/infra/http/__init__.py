"""HTTP adapters for the generation backend."""
