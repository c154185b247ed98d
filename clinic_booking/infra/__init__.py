"""Adapters for the hosted backend, Redis and EmailJS."""
