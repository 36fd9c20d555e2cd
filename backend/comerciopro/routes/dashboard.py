# Overview: Flask API route for the dashboard summary.

from flask import Blueprint, current_app, g

from ..decorators import require_auth
from ..services import reporting_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard_route():
    """
    Totals, recent movements, outbound quantity per day, low stock and
    payment status of sales. Scoped to the caller's store for admins.
    """
    try:
        return reporting_service.dashboard(g.current_user), 200
    except Exception:
        current_app.logger.exception("Failed to load dashboard")
        return {"error": "Internal server error"}, 500
