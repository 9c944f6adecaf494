# Overview: Flask API routes for loyalty reads.

from flask import Blueprint, g

from ..decorators import require_auth
from ..responses import success
from ..services import loyalty_service


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/user")


@loyalty_bp.get("/loyalty")
@require_auth
def my_loyalty_route():
    return success(loyalty_service.get_user_loyalty(g.principal.user_id))
