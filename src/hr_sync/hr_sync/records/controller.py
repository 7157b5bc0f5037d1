from __future__ import annotations

from typing import Iterable, Optional

from flask import Flask, jsonify, request

from ..common.http import criteria_from_args, json_body, json_errors, parse_identity, records_payload
from ..runtime import EventLoopThread
from .store import ReconcilingRecordStore


def register_store_routes(
    app: Flask,
    runtime: EventLoopThread,
    store: ReconcilingRecordStore,
    *,
    prefix: str,
    name: str,
    date_field: Optional[str] = None,
    choice_fields: Iterable[str] = (),
    allow_create: bool = True,
) -> None:
    """List/edit/retry/discard/delete/refresh routes shared by every record view."""
    choice_fields = tuple(choice_fields)

    def record_response(record_id, **extra):
        merged = store.get(record_id)
        return jsonify({"success": not (merged.failed or merged.conflict), "record": merged.to_dict(), **extra})

    @app.route(prefix, methods=["GET"], endpoint=f"{name}_list")
    @json_errors
    def list_records():
        criteria = criteria_from_args(store.normalizer, request.args, date_field=date_field, choice_fields=choice_fields)
        return jsonify(records_payload(store.view(criteria), fetch_error=store.fetch_error))

    @app.route(f"{prefix}/<identity>", methods=["GET"], endpoint=f"{name}_get")
    @json_errors
    def get_record(identity):
        return jsonify({"success": True, "record": store.get(parse_identity(identity)).to_dict()})

    if allow_create:

        @app.route(prefix, methods=["POST"], endpoint=f"{name}_create")
        @json_errors
        def create_record():
            identity = runtime.run(store.create(json_body()))
            return record_response(identity, identity=identity), 201

    @app.route(f"{prefix}/<identity>", methods=["PATCH"], endpoint=f"{name}_edit")
    @json_errors
    def edit_record(identity):
        identity = parse_identity(identity)
        confirmed = runtime.run(store.commit_edit(identity, json_body()))
        return record_response(identity, confirmed=confirmed)

    @app.route(f"{prefix}/<identity>/retry", methods=["POST"], endpoint=f"{name}_retry")
    @json_errors
    def retry_record(identity):
        confirmed = runtime.run(store.retry(parse_identity(identity)))
        return jsonify({"success": confirmed, "confirmed": confirmed})

    @app.route(f"{prefix}/<identity>/edit", methods=["DELETE"], endpoint=f"{name}_discard")
    @json_errors
    def discard_edit(identity):
        discarded = runtime.call(store.discard_edit, parse_identity(identity))
        return jsonify({"success": discarded})

    @app.route(f"{prefix}/<identity>", methods=["DELETE"], endpoint=f"{name}_delete")
    @json_errors
    def delete_record(identity):
        deleted = runtime.run(store.delete(parse_identity(identity)))
        return jsonify({"success": deleted}), (200 if deleted else 502)

    @app.route(f"{prefix}/refresh", methods=["POST"], endpoint=f"{name}_refresh")
    @json_errors
    def refresh_records():
        ok = runtime.run(store.refresh())
        return jsonify({"success": ok, "fetch_error": store.fetch_error}), (200 if ok else 502)

    @app.route(f"{prefix}/fetch-error", methods=["DELETE"], endpoint=f"{name}_dismiss_error")
    def dismiss_fetch_error():
        runtime.call(store.dismiss_fetch_error)
        return jsonify({"success": True})
