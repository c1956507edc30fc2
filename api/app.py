"""
Flask application for the recovery risk service.
State is held in memory by one engine per application.
"""

import os
import logging
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from recovery_risk.config import load_config
from recovery_risk.engine import RiskScoringEngine
from services.risk_summary import RiskSummaryService
from api.recovery_risk_api import recovery_risk_bp, EXTENSION_KEY

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(engine: Optional[RiskScoringEngine] = None,
               summary_service: Optional[RiskSummaryService] = None) -> Flask:
    """Build the app; an engine is created from config/recovery_risk.yaml when none is given"""
    app = Flask(__name__)
    CORS(app)

    if engine is None:
        engine = RiskScoringEngine(load_config())

    app.extensions[EXTENSION_KEY] = {
        "engine": engine,
        "summary": summary_service or RiskSummaryService(),
    }

    app.register_blueprint(recovery_risk_bp)
    logger.info("Recovery risk API registered at /api/recovery-risk")

    @app.route('/health')
    def health():
        return jsonify({
            "status": "ok",
            "baseline_profiles": len(engine.population),
            "tracked_patients": len(engine.store.patient_ids())
        })

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8084))
    create_app().run(host='0.0.0.0', port=port)
