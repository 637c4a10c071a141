"""
Utility functions for the application.
"""
from .route_decorators import (
    RequestConflict,
    ResourceNotFound,
    handle_route_errors,
    success_response,
)

__all__ = ['RequestConflict', 'ResourceNotFound', 'handle_route_errors', 'success_response']
