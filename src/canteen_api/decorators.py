"""Decorators for route protection.

Authentication happens upstream: the gateway forwards the authenticated user in
the ``X-User-Id`` and ``X-User-Role`` headers. These decorators only read them.
"""

from __future__ import annotations

from functools import wraps
from http import HTTPStatus

from flask import g, jsonify, request

from canteen_shared.constants import Roles
from canteen_shared.serializers import error_response
from canteen_shared.services.access import Actor

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"


def _actor_from_headers() -> Actor | None:
    raw_id = request.headers.get(USER_ID_HEADER, "").strip()
    raw_role = request.headers.get(USER_ROLE_HEADER, "").strip().lower()
    if not raw_id.isdigit() or raw_role not in Roles.all_values():
        return None
    return Actor(user_id=int(raw_id), role=Roles(raw_role))


def get_current_actor() -> Actor:
    return g.actor


def role_required(*required_roles: Roles):
    """
    Decorator factory requiring an authenticated actor with one of the roles.

    Admins pass every role check. With no roles given any authenticated actor
    is accepted.
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = _actor_from_headers()
            if actor is None:
                return jsonify(error_response("Authentication required")), HTTPStatus.UNAUTHORIZED

            if required_roles and not actor.is_admin and actor.role not in required_roles:
                roles_str = ", ".join(role.value for role in required_roles)
                return jsonify(
                    error_response(f"One of these roles is required: {roles_str}")
                ), HTTPStatus.FORBIDDEN

            g.actor = actor
            return f(*args, **kwargs)

        return decorated_function

    return decorator


login_required = role_required()
