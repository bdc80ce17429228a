"""NutriAI backend: edge-function style API for food search, transcription and meal analysis."""

__version__ = "1.0.0"
