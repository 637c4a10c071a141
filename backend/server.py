import os
import atexit
import logging
from flask import Flask
from flask_cors import CORS
from app.middleware import register_error_handlers
from app.routes import register_blueprints
from app.routes.graph import ExecutionRegistry
from utils.logging_utils import setup_logging
from database import RunStore, AsyncRunStore
from graph_engine.node_executors import HttpNodeExecutor
from config import RUN_RETENTION_DAYS, SERVER_PORT

logger = logging.getLogger(__name__)


def create_app(run_store=None, node_executor=None, retention_days=RUN_RETENTION_DAYS):
    """
    Build the Flask application.

    Args:
        run_store: RunStore for run history (defaults to the configured duckdb file)
        node_executor: Executor for LLM / crop / frame nodes (defaults to the remote service)
        retention_days: Delete runs older than this many days before serving (0 disables)
    """
    app = Flask(__name__)
    CORS(app)

    register_error_handlers(app)

    # Sync store for CRUD routes, async wrapper for the recorder inside runs
    run_store = run_store or RunStore()
    if retention_days > 0:
        run_store.cleanup_old_runs(retention_days)
    async_run_store = AsyncRunStore(run_store)
    node_executor = node_executor or HttpNodeExecutor()
    execution_registry = ExecutionRegistry()

    register_blueprints(app, run_store, async_run_store, node_executor, execution_registry)
    app.extensions['workflow_executions'] = execution_registry
    app.extensions['run_store'] = run_store
    app.extensions['async_run_store'] = async_run_store

    @app.route('/health')
    def health():
        return {"status": "ok"}

    return app


if __name__ == '__main__':
    setup_logging()
    app = create_app()
    atexit.register(app.extensions['async_run_store'].shutdown)
    flask_debug = os.environ.get("FLASK_DEBUG", "0") == "1"
    logger.info(f"Workflow server listening on port {SERVER_PORT}")
    app.run(debug=flask_debug, host='0.0.0.0', port=SERVER_PORT)
