"""HTTP blueprints for the connector API."""
