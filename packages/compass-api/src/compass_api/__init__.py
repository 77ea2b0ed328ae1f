"""CulturalCompass knowledge API."""
