"""Service layer for Card Intake."""
