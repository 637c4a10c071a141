"""
Route blueprints registration.
"""
from . import graph, runs


def register_blueprints(app, run_store, async_run_store, node_executor, execution_registry):
    """Register all route blueprints with the Flask app."""

    # Graph editing checks, scheduling and background execution
    graph_bp = graph.init_routes(node_executor, async_run_store, execution_registry)
    app.register_blueprint(graph_bp)

    # Run history
    runs_bp = runs.init_routes(run_store)
    app.register_blueprint(runs_bp)
