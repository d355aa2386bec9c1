from __future__ import annotations

import logging

from flask import Blueprint, jsonify

from app.catalog.db import db_session
from app.catalog.modules.dashboard.service import get_dashboard_stats
from app.catalog.rbac import require_login

bp = Blueprint("dashboard", __name__)
logger = logging.getLogger(__name__)


@bp.get("/stats")
@require_login
def dashboard_stats():
    stats = get_dashboard_stats(db_session())
    logger.debug("Dashboard stats fetched")
    return jsonify(stats)
