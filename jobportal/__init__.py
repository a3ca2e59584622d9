"""Job portal authentication service."""
