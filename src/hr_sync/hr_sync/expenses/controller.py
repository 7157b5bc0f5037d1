from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.http import criteria_from_args, json_errors
from ..container import Container
from ..records.controller import register_store_routes
from .analytics import summarize

PREFIX = "/api/expenses"


def register(app: Flask, container: Container) -> None:
    store = container.expense_store

    @app.route(f"{PREFIX}/analytics", methods=["GET"], endpoint="expenses_analytics")
    @json_errors
    def analytics():
        criteria = criteria_from_args(store.normalizer, request.args, date_field="submitted", choice_fields=("category",))
        return jsonify({"success": True, "analytics": summarize(store.view(criteria))})

    register_store_routes(
        app,
        container.runtime,
        store,
        prefix=PREFIX,
        name="expenses",
        date_field="submitted",
        choice_fields=("category",),
    )
