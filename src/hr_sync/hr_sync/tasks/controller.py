from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.datetime_utils import now_utc
from ..common.http import criteria_from_args, json_errors, records_payload
from ..container import Container
from ..records.controller import register_store_routes
from .normalizer import is_overdue
from .stats import summarize

PREFIX = "/api/tasks"


def register(app: Flask, container: Container) -> None:
    store = container.task_store

    def criteria():
        return criteria_from_args(store.normalizer, request.args, date_field="deadline", choice_fields=("priority",))

    @app.route(f"{PREFIX}/overdue", methods=["GET"], endpoint="tasks_overdue")
    @json_errors
    def overdue():
        now = now_utc()
        return jsonify(records_payload(r for r in store.view(criteria()) if is_overdue(r.record, now)))

    @app.route(f"{PREFIX}/stats", methods=["GET"], endpoint="tasks_stats")
    @json_errors
    def stats():
        return jsonify({"success": True, "stats": summarize(store.view(criteria()), now=now_utc())})

    register_store_routes(
        app,
        container.runtime,
        store,
        prefix=PREFIX,
        name="tasks",
        date_field="deadline",
        choice_fields=("priority",),
    )
