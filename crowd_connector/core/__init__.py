"""Schema mapping, staging models and object handlers."""
