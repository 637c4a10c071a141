"""
Flask application layer: route blueprints, middleware and request helpers.
"""
