# Overview: JSON envelope helpers; every API response is {status, data} or {status, error}.

from flask import jsonify


def success(data=None, status: int = 200):
    return jsonify({"status": status, "data": data}), status


def failure(message: str, status: int = 400):
    return jsonify({"status": status, "error": message}), status
