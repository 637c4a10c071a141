"""
Request data extraction and validation utilities.

Routes declare the fields they read; missing or malformed values surface as
ValueError, which handle_route_errors turns into a 400.

Example usage:
    data = extract_json_fields(
        RequestField('workflow_id', required=True, aliases=('workflowId',)),
        RequestField('mode', default='full', validator=one_of('full', 'selected', 'single'))
    )
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from flask import request

from graph_engine.schema import Edge, Node, parse_graph

logger = logging.getLogger(__name__)


class RequestField:
    """
    One field read from a JSON body or the query string.

    Args:
        name: Key the value is returned under (and the first key looked up)
        required: Missing, None, '' and empty containers raise ValueError
        default: Value used when no key matches
        transform: Applied before validation (int, to_bool, ...)
        validator: Must return True for the value to be accepted
        error_message: Message for a missing required field
        aliases: Other keys accepted for the same field (camelCase vs snake_case)
    """

    def __init__(
        self,
        name: str,
        *,
        required: bool = False,
        default: Any = None,
        transform: Optional[Callable[[Any], Any]] = None,
        validator: Optional[Callable[[Any], bool]] = None,
        error_message: Optional[str] = None,
        aliases: Tuple[str, ...] = ()
    ):
        self.name = name
        self.required = required
        self.default = default
        self.transform = transform
        self.validator = validator
        self.error_message = error_message or f"{name} required"
        self.keys = (name, *aliases)

    def read(self, source: Dict[str, Any]) -> Any:
        value = next((source[key] for key in self.keys if key in source), self.default)

        if self.required and (value is None or value == '' or value == [] or value == {}):
            raise ValueError(self.error_message)
        if value is None:
            return None

        if self.transform:
            try:
                value = self.transform(value)
            except (TypeError, ValueError) as e:
                logger.warning(f"Transform failed for field '{self.name}': {e}")
                raise ValueError(f"Invalid format for {self.name}")

        if self.validator and not self.validator(value):
            raise ValueError(f"Invalid {self.name}")
        return value


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def extract_json_fields(*fields: RequestField) -> Dict[str, Any]:
    """Read ``fields`` from the JSON body."""
    body = _json_body()
    return {field.name: field.read(body) for field in fields}


def extract_query_params(*fields: RequestField) -> Dict[str, Any]:
    """Read ``fields`` from the query string (values arrive as strings)."""
    args = request.args.to_dict()
    return {field.name: field.read(args) for field in fields}


def extract_graph() -> Tuple[List[Node], List[Edge]]:
    """
    Parse the ``{nodes, edges}`` part of a JSON body into engine objects.

    Raises GraphValidationError (a ValueError) for duplicate ids, nodes
    without a type or edges pointing outside the payload.
    """
    data = extract_json_fields(
        RequestField('nodes', default=[], validator=is_list),
        RequestField('edges', default=[], validator=is_list),
    )
    return parse_graph(data)


# ============================================================================
# Validators and transformers
# ============================================================================

def is_list(value: Any) -> bool:
    return isinstance(value, list)


def is_dict(value: Any) -> bool:
    return isinstance(value, dict)


def non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def positive_int(value: Any) -> bool:
    return isinstance(value, int) and value > 0


def one_of(*choices: Any) -> Callable[[Any], bool]:
    return lambda value: value in choices


def to_int(value: Any) -> int:
    return int(value)


def to_bool(value: Any) -> bool:
    """Accepts JSON booleans and 'true'/'1'/'yes'/'on' strings."""
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'on')
    return bool(value)
