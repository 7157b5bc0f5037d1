from __future__ import annotations

from flask import Flask, jsonify, request, send_file

from ..common.http import criteria_from_args, json_body, json_errors, parse_identity
from ..container import Container
from ..core.exceptions import ValidationError
from ..records.controller import register_store_routes
from .export import export_csv, export_excel

PREFIX = "/api/attendance"
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def register(app: Flask, container: Container) -> None:
    service = container.attendance_service
    store = container.attendance_store
    runtime = container.runtime

    def criteria():
        return criteria_from_args(store.normalizer, request.args, date_field="checkIn")

    def checkin_payload():
        """JSON body, or a multipart form carrying a `selfie` file."""
        if request.files:
            selfie = request.files.get("selfie")
            return request.form.get("employee_id"), (selfie.read() if selfie else None)
        return json_body().get("employee_id"), None

    @app.route(f"{PREFIX}/checkin", methods=["POST"], endpoint="attendance_checkin")
    @json_errors
    def checkin():
        employee_id, selfie = checkin_payload()
        merged = runtime.run(service.check_in(employee_id, selfie=selfie))
        return jsonify({"success": not merged.failed, "record": merged.to_dict()}), 201

    @app.route(f"{PREFIX}/checkout", methods=["POST"], endpoint="attendance_checkout")
    @json_errors
    def checkout():
        merged = runtime.run(service.check_out(json_body().get("employee_id")))
        return jsonify({"success": not (merged.failed or merged.conflict), "record": merged.to_dict()})

    @app.route(f"{PREFIX}/absent", methods=["POST"], endpoint="attendance_absent")
    @json_errors
    def absent():
        merged = runtime.run(service.mark_absent(json_body().get("employee_id")))
        return jsonify({"success": not merged.failed, "record": merged.to_dict()}), 201

    @app.route(f"{PREFIX}/<identity>/selfie", methods=["POST"], endpoint="attendance_selfie")
    @json_errors
    def selfie(identity):
        upload = request.files.get("selfie")
        if upload is None:
            raise ValidationError("selfie file is required")
        merged = runtime.run(service.attach_selfie(parse_identity(identity), upload.read()))
        return jsonify({"success": not (merged.failed or merged.conflict), "record": merged.to_dict()})

    @app.route(f"{PREFIX}/stats", methods=["GET"], endpoint="attendance_stats")
    @json_errors
    def stats():
        return jsonify({"success": True, "stats": service.stats(criteria()).to_dict()})

    @app.route(f"{PREFIX}/export", methods=["GET"], endpoint="attendance_export")
    @json_errors
    def export():
        fmt = request.args.get("format", "xlsx").lower()
        records = service.list(criteria())
        tz = service.settings.tz
        if fmt == "csv":
            return send_file(export_csv(records, tz=tz), download_name="attendance.csv", as_attachment=True, mimetype="text/csv")
        if fmt == "xlsx":
            return send_file(export_excel(records, tz=tz), download_name="attendance.xlsx", as_attachment=True, mimetype=XLSX_MIMETYPE)
        raise ValidationError(f"unsupported export format: {fmt!r}")

    register_store_routes(app, runtime, store, prefix=PREFIX, name="attendance", date_field="checkIn", allow_create=False)
