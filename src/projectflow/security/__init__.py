"""Browser session handling for first-party requests."""
