"""Runtime components for live host monitoring."""
