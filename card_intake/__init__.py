"""
Card Intake - Character card import and avatar editing service

A FastAPI-based service that downloads character cards from third-party
providers and rewrites character avatars with their embedded metadata.
"""

__version__ = "0.1.0"
