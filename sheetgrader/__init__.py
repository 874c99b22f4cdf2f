"""
Exam Sheet Evaluator
====================

Flask-based backend that grades an uploaded exam sheet image against a
rubric with a multimodal AI model and returns the result as a Word document.

Structure:
- routes/: API route blueprints
- services/: Response parsing, document generation, font provisioning
- models.py: Typed grading model
- config.py: Configuration management
"""

from .config import config, Config

__version__ = "1.0.0"

__all__ = ['config', 'Config']
