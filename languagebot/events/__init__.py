"""Event channels shared by the ports and the turn controller."""
