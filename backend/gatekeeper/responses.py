"""
responses.py — The success half of the response envelope.

    {"success": true, "message": "...", "data": {...}}

The error half is AppError.to_dict(), rendered by the global error handlers.
"""

from __future__ import annotations

from flask import jsonify


def success_response(data=None, message: str = "Success", status: int = 200):
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return jsonify(body), status
