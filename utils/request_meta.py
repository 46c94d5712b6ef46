from flask import request


def client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip = forwarded.split(",")[0].strip() or request.remote_addr or "unknown"

    # Normalize IPv6 loopback / mapped addresses
    if ip in ("::1", "::ffff:127.0.0.1"):
        ip = "127.0.0.1"
    if ip.startswith("::ffff:"):
        ip = ip[len("::ffff:"):]
    return ip


def user_agent() -> str:
    return (request.headers.get("User-Agent") or "")[:255]
