#!/usr/bin/env python3
"""
Exam Sheet Evaluator
====================
Run: python3 -m sheetgrader.app
Then open: http://localhost:3000
"""
import logging

from flask import Flask
from flask_cors import CORS

from sheetgrader.config import PUBLIC_DIR, HOST, PORT, DEBUG
from sheetgrader.routes import register_routes


def create_app():
    """Build the Flask app: static frontend from public/, API blueprints."""
    app = Flask(__name__, static_folder=str(PUBLIC_DIR), static_url_path='')
    CORS(app)
    register_routes(app)

    @app.route('/')
    def index():
        return app.send_static_file('index.html')

    return app


app = create_app()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print(f"Server running on http://localhost:{PORT}")
    app.run(host=HOST, port=PORT, debug=DEBUG)
