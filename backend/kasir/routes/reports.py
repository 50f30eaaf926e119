# Overview: Flask API routes for reporting; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth
from ..services.reporting_service import dashboard_summary, ReportError


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    """
    Query params:
    - range: all | today | week | month | custom (default all)
    - start, end: YYYY-MM-DD for custom ranges
    """
    try:
        result = dashboard_summary(
            range_key=request.args.get("range", "all"),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result), 200
