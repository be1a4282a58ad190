"""
REST view of a release catalog: Flask app factory.

All endpoints are read-only and return JSON. The catalog is injected into
:func:`create_app` and stored on the app; routes reach it through
``current_app``.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Flask, current_app, jsonify

from .catalog import Catalog
from .errors import CatalogLookupError

logger = logging.getLogger("ReleaseCatalog.server")

catalog_bp = Blueprint("catalog", __name__)

_ROUTES = ["/list", "/latest/<product>", "/versions/<product>"]


def _catalog() -> Catalog:
    return current_app.config["RELEASE_CATALOG"]


@catalog_bp.route("/")
def index():  # type: ignore[no-untyped-def]
    """Available routes."""
    return jsonify({"available_routes": _ROUTES})


@catalog_bp.route("/list")
def list_products():  # type: ignore[no-untyped-def]
    return jsonify({"products": _catalog().list_products()})


@catalog_bp.route("/latest/<product>")
def latest(product: str):  # type: ignore[no-untyped-def]
    catalog = _catalog()
    return jsonify({"product": catalog.get_product(product).name, "version": catalog.latest_version(product)})


@catalog_bp.route("/versions/<product>")
def versions(product: str):  # type: ignore[no-untyped-def]
    catalog = _catalog()
    return jsonify({"product": catalog.get_product(product).name, "versions": catalog.list_versions(product)})


@catalog_bp.app_errorhandler(CatalogLookupError)
def _lookup_failed(exc: CatalogLookupError):  # type: ignore[no-untyped-def]
    return jsonify({"error": str(exc), "product": exc.product}), 404


def create_app(catalog: Catalog) -> Flask:
    """Create the Flask application serving ``catalog``.

    Args:
        catalog: Frozen catalog to expose; never mutated by the routes.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)
    app.config["RELEASE_CATALOG"] = catalog
    app.json.sort_keys = False  # type: ignore[attr-defined]
    app.register_blueprint(catalog_bp)
    logger.info("REST app created (products=%d)", len(catalog))
    return app
