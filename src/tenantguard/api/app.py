"""Flask REST API for TenantGuard.

Endpoints:
  GET  /api/v1/status             Service health check
  GET  /api/v1/rules              List rules (filter by category, severity, tag)
  GET  /api/v1/rules/<rule_id>    Describe one rule
  POST /api/v1/evaluate           Evaluate submitted objects
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify, request

from tenantguard import __version__
from tenantguard.check.checker import ComplianceChecker
from tenantguard.errors import RuleNotFoundError, TargetLoadError
from tenantguard.models import RuleDefinition
from tenantguard.rules.registry import metadata_filter

logger = logging.getLogger(__name__)


def _rule_summary(rule: RuleDefinition) -> dict:
    return {
        "rule_id": rule.rule_id,
        "title": rule.title,
        "category": rule.category,
        "severity": rule.severity.value,
        "types": list(rule.type_filter),
        "tags": list(rule.tags),
    }


def create_app(checker: ComplianceChecker | None = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.json.sort_keys = False

    _checker = checker or ComplianceChecker()

    @app.route("/api/v1/status", methods=["GET"])
    def status():
        """Health check endpoint."""
        return jsonify({
            "status": "healthy",
            "version": __version__,
            "rules_loaded": len(_checker.registry),
        })

    @app.route("/api/v1/rules", methods=["GET"])
    def list_rules():
        """List loaded rules, optionally filtered."""
        rule_filter = metadata_filter(
            category=request.args.get("category"),
            severity=request.args.get("severity"),
            tags=request.args.get("tag"),
        )
        rules = _checker.registry.all_matching(rule_filter)
        return jsonify({
            "count": len(rules),
            "rules": [_rule_summary(r) for r in rules],
        })

    @app.route("/api/v1/rules/<rule_id>", methods=["GET"])
    def get_rule(rule_id: str):
        try:
            rule = _checker.registry.lookup(rule_id)
        except RuleNotFoundError as e:
            return jsonify({"error": str(e)}), 404
        return jsonify({**_rule_summary(rule), "description": rule.description})

    @app.route("/api/v1/evaluate", methods=["POST"])
    def evaluate():
        """Evaluate a batch of objects and return the full report."""
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or "objects" not in data:
            return jsonify({"error": "Missing 'objects' in request body"}), 400

        try:
            objects = _checker.targets.parse(data["objects"], source="request")
        except TargetLoadError as e:
            return jsonify({"error": str(e)}), 400

        criteria = data.get("filter") or {}
        if not isinstance(criteria, dict):
            return jsonify({"error": "'filter' must be an object"}), 400

        rule_filter = metadata_filter(**{str(k): v for k, v in criteria.items()}) if criteria else None
        report = _checker.check_targets(objects, rule_filter)
        logger.info("API evaluation: %d objects, status %s",
                    report.objects_evaluated, report.run_status.value)
        return jsonify(report.to_dict())

    return app
