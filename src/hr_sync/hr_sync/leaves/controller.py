from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.http import criteria_from_args, json_body, json_errors, parse_identity, records_payload
from ..container import Container
from ..records.controller import register_store_routes

PREFIX = "/api/leaves"


def register(app: Flask, container: Container) -> None:
    service = container.leave_service
    store = container.leave_store
    runtime = container.runtime

    def criteria():
        return criteria_from_args(store.normalizer, request.args, date_field="start", choice_fields=("leave_type",))

    @app.route(f"{PREFIX}/mine", methods=["GET"], endpoint="leaves_mine")
    @json_errors
    def mine():
        records = service.for_employee(request.args.get("employee_id"), criteria())
        return jsonify(records_payload(records, fetch_error=store.fetch_error))

    @app.route(f"{PREFIX}/stats", methods=["GET"], endpoint="leaves_stats")
    @json_errors
    def stats():
        return jsonify({"success": True, "stats": service.stats(criteria())})

    @app.route(f"{PREFIX}/apply", methods=["POST"], endpoint="leaves_apply")
    @json_errors
    def apply():
        body = json_body()
        merged = runtime.run(
            service.apply(
                body.get("employee_id"),
                leave_type=body.get("leave_type"),
                start=body.get("start_date"),
                end=body.get("end_date"),
                reason=body.get("reason"),
            )
        )
        return jsonify({"success": not merged.failed, "record": merged.to_dict()}), 201

    @app.route(f"{PREFIX}/<identity>/status", methods=["POST"], endpoint="leaves_status")
    @json_errors
    def set_status(identity):
        merged = runtime.run(service.set_status(parse_identity(identity), json_body().get("status")))
        return jsonify({"success": not (merged.failed or merged.conflict), "record": merged.to_dict()})

    @app.route(f"{PREFIX}/<identity>/cancel", methods=["POST"], endpoint="leaves_cancel")
    @json_errors
    def cancel(identity):
        cancelled = runtime.run(service.cancel(parse_identity(identity), json_body().get("employee_id")))
        return jsonify({"success": cancelled}), (200 if cancelled else 502)

    register_store_routes(
        app,
        runtime,
        store,
        prefix=PREFIX,
        name="leaves",
        date_field="start",
        choice_fields=("leave_type",),
        allow_create=False,
    )
