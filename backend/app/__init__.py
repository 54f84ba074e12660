"""Emotion Coach backend."""
