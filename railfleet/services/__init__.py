"""Domain services for the fleet lifecycle core."""
