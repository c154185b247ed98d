"""Clinic Booking: doctor directory, appointment booking and clinic admin."""

__version__ = "1.0.0"
