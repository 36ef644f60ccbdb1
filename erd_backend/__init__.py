"""ER diagram editor backend: the mutation layer and its HTTP API."""
