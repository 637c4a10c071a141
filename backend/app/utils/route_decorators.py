"""
Route decorators for standardized error handling and response formatting.

Route handlers return plain dicts (or ``(dict, status)`` tuples) and raise
on failure; the decorator turns both into JSON responses.
"""

import logging
from functools import wraps
from flask import jsonify

logger = logging.getLogger(__name__)


class ResourceNotFound(LookupError):
    """Raised by a route when the addressed run/execution does not exist."""


class RequestConflict(RuntimeError):
    """Raised by a route when the request collides with work in flight."""


def handle_route_errors(route_description=None):
    """
    Decorator to standardize error handling across all routes.

    Handles:
    - ValueError (including graph validation errors) -> 400 Bad Request
    - ResourceNotFound -> 404 Not Found
    - RequestConflict -> 409 Conflict
    - Exception -> 500 Internal Server Error
    - Automatic JSON response formatting via jsonify()

    Args:
        route_description: Optional human-readable description for logging.
                          If not provided, defaults to the function name.

    Usage:
        @bp.route('/runs/<run_id>', methods=['GET'])
        @handle_route_errors("getting run")
        def get_run(run_id):
            run = store.get_run(run_id)
            if run is None:
                raise ResourceNotFound("Run not found")
            return run
    """
    def decorator(f):
        desc = route_description or f.__name__

        @wraps(f)
        def wrapper(*args, **kwargs):
            try:
                return _format_response(f(*args, **kwargs))
            except ValueError as e:
                logger.warning("%s - ValueError: %s", desc, str(e))
                return jsonify({"error": str(e)}), 400
            except ResourceNotFound as e:
                logger.info("%s - not found: %s", desc, str(e))
                return jsonify({"error": str(e)}), 404
            except RequestConflict as e:
                logger.warning("%s - conflict: %s", desc, str(e))
                return jsonify({"error": str(e)}), 409
            except Exception as e:
                logger.exception("Error in %s: %s", desc, e)
                return jsonify({"error": str(e)}), 500

        return wrapper

    return decorator


def _format_response(result):
    """
    Format route handler response for Flask.

    Args:
        result: Return value from route handler

    Returns:
        Properly formatted Flask response
    """
    # Already a Response object
    if hasattr(result, 'status_code'):
        return result

    if isinstance(result, tuple):
        data = result[0]
        rest = result[1:]
        if isinstance(data, (dict, list)):
            return (jsonify(data), *rest)
        return result

    if isinstance(result, (dict, list)):
        return jsonify(result)

    return result


def success_response(data=None, message=None, **kwargs):
    """
    Build a standardized success response dictionary.

    Args:
        data: Optional data payload to include in response
        message: Optional success message
        **kwargs: Additional fields to include in response

    Returns:
        dict: Response dictionary with 'success': True and optional fields
    """
    response = {"success": True}

    if message:
        response["message"] = message

    if data is not None:
        response["data"] = data

    response.update(kwargs)
    return response
