"""Event registration and order management API."""
