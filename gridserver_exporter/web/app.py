"""
Web Application Module

This module provides the Flask application that serves the Prometheus
telemetry endpoint and a small landing page.
"""

from flask import Flask, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

INDEX_TEMPLATE = """<!doctype html>
<html lang="en-US">
<head>
    <meta http-equiv="Content-Type" content="text/html; charset=utf-8">
    <title>GridServer Exporter for Prometheus</title>
</head>
<body>
    <h1>GridServer Exporter for Prometheus</h1>
    <p><a href="{metrics_path}">Metrics</a></p>
</body>
</html>
"""


def create_app(registry: CollectorRegistry, metrics_path: str = '/metrics') -> Flask:
    """Create and configure the Flask application."""

    app = Flask(__name__)

    @app.route('/')
    def index():
        """Render the landing page."""
        return Response(INDEX_TEMPLATE.format(metrics_path=metrics_path),
                        mimetype='text/html')

    def metrics():
        """Run a collection cycle and expose the result."""
        return Response(generate_latest(registry), headers={'Content-Type': CONTENT_TYPE_LATEST})

    app.add_url_rule(metrics_path, 'metrics', metrics)

    return app
