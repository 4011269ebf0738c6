"""Optional web status mirror for the coach."""
