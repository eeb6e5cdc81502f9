# backend/gatekeeper/routes/users.py
from flask import Blueprint

from backend.gatekeeper.extensions import db
from backend.gatekeeper.middleware.auth_middleware import require_auth
from backend.gatekeeper.responses import success_response
from backend.gatekeeper.services import auth_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/<int:user_id>", methods=["GET"])
@require_auth
def get_user(user_id: int):
    user = auth_service.get_current_user(user_id, db.session)
    return success_response(user, "User retrieved successfully")
