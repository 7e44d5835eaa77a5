"""HTTP API for Card Intake."""
