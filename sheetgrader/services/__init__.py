"""
Services
========

Business logic for the exam sheet evaluator.

Services:
- grading_parser: AI response -> GradingResult, rubric form parsing
- document_generator: GradingResult -> .docx bytes
- font_resolver: Unicode font lookup, cache and download
- filenames: safe attachment names
- scoring_service: multimodal AI scoring call
"""

__all__ = [
    'grading_parser',
    'document_generator',
    'font_resolver',
    'filenames',
    'scoring_service',
]
