"""Middleware for the billing API"""

from cloud_functions.middleware.auth import (
    AuthenticatedUser,
    get_current_user,
    security_scheme,
    verify_firebase_token,
)

__all__ = [
    'AuthenticatedUser',
    'get_current_user',
    'security_scheme',
    'verify_firebase_token',
]
