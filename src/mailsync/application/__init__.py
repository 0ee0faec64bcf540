"""Application layer - sync use cases, ports and content normalization."""
