"""Purchase order approval workflow service."""
