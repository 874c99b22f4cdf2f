"""
API Routes
==========

Route blueprints for the exam sheet evaluator.

Usage:
    from sheetgrader.routes import register_routes
    register_routes(app)
"""
from .evaluate_routes import evaluate_bp


def register_routes(app):
    """Register all route blueprints with the Flask app."""
    app.register_blueprint(evaluate_bp)


__all__ = [
    'register_routes',
    'evaluate_bp',
]
