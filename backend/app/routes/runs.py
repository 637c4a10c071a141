"""
Run history routes.
"""
import logging
from flask import Blueprint

from config import RUN_HISTORY_LIMIT
from database.run_store import RUN_SCOPES, RUN_STATUSES
from app.utils.route_decorators import ResourceNotFound, handle_route_errors, success_response
from app.utils.request_validators import (
    RequestField,
    extract_json_fields,
    extract_query_params,
    one_of,
    positive_int,
    to_int,
)

logger = logging.getLogger(__name__)


def init_routes(run_store):
    """Initialize routes with dependencies."""
    bp = Blueprint('runs', __name__)

    @bp.route('/runs', methods=['GET'])
    @handle_route_errors("listing runs")
    def list_runs():
        """Runs of one workflow, most recent first."""
        params = extract_query_params(
            RequestField('workflowId', required=True, aliases=('workflow_id',)),
            RequestField('limit', default=RUN_HISTORY_LIMIT, transform=to_int, validator=positive_int),
        )
        return run_store.list_runs(params['workflowId'], params['limit'])

    @bp.route('/runs/<run_id>', methods=['GET'])
    @handle_route_errors("getting run")
    def get_run(run_id):
        run = run_store.get_run(run_id)
        if run is None:
            raise ResourceNotFound("Run not found")
        return run

    @bp.route('/runs', methods=['POST'])
    @handle_route_errors("creating run")
    def create_run():
        data = extract_json_fields(
            RequestField('workflowId', required=True, aliases=('workflow_id',)),
            RequestField('scope', default='full', validator=one_of(*RUN_SCOPES)),
            RequestField('status', default='running', validator=one_of(*RUN_STATUSES)),
            RequestField('duration', transform=to_int),
        )
        run_id = run_store.create_run(data['workflowId'], data['scope'], data['status'], data['duration'])
        return run_store.get_run(run_id) or {"id": run_id}

    @bp.route('/runs/nodes', methods=['POST'])
    @handle_route_errors("recording node execution")
    def create_node_execution():
        data = extract_json_fields(
            RequestField('runId', required=True, aliases=('run_id',)),
            RequestField('nodeId', required=True, aliases=('node_id',)),
            RequestField('nodeType', required=True, aliases=('node_type',)),
            RequestField('status', required=True),
            RequestField('inputs'),
            RequestField('outputs'),
            RequestField('error'),
            RequestField('duration', transform=to_int),
        )
        if run_store.get_run(data['runId']) is None:
            raise ResourceNotFound("Run not found")

        execution_id = run_store.append_node_execution(data['runId'], {
            'node_id': data['nodeId'],
            'node_type': data['nodeType'],
            'status': data['status'],
            'inputs': data['inputs'],
            'outputs': data['outputs'],
            'error': data['error'],
            'duration': data['duration'],
        })
        return success_response(id=execution_id, run_id=data['runId'])

    @bp.route('/runs/<run_id>', methods=['DELETE'])
    @handle_route_errors("deleting run")
    def delete_run(run_id):
        if run_store.get_run(run_id) is None:
            raise ResourceNotFound("Run not found")
        if not run_store.delete_run(run_id):
            raise RuntimeError(f"Failed to delete run {run_id}")
        return success_response(message="Run deleted")

    return bp
