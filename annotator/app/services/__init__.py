"""Service layer: authorization and object storage."""
