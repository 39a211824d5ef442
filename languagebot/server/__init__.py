"""HTTP control surface for practice sessions."""
