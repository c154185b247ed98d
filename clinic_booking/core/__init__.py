"""Domain logic: booking, directory, admin and resilience helpers."""
