"""Built-in domain operations."""
