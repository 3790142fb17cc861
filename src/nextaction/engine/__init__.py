"""Task entity, reconciliation engine and replica state."""
