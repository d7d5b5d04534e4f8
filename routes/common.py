from flask import g, request


def client_ip():
    forwarded = request.headers.get("X-Forwarded-For", "")
    return forwarded.split(",")[0].strip() if forwarded else (request.remote_addr or "unknown")


def service(cls):
    """Build a domain service bound to this request's session and caller."""
    return cls(g.session, g.user, client_ip())


def json_body():
    return request.get_json(silent=True) or {}
