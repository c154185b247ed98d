"""
Clinic Booking test suite.

Running Tests:
    pip install -e ".[test]"
    pytest tests/ -v

Unit tests run against an in-memory Table Store (tests/conftest.py) and
mocked httpx / Redis clients; no network access is needed.
"""
