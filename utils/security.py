"""Security helpers for response headers, passwords and client metadata."""
from flask import request


def apply_security_headers(response, force_https: bool = False):
    """Apply headers suited to a JSON API; attachments are the only served media."""
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; img-src 'self'; frame-ancestors 'none'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains")
    return response


def password_meets_policy(password: str) -> tuple[bool, str | None]:
    if len(password) < 10:
        return False, "Password must be at least 10 characters long."
    if password.lower() == password or password.upper() == password:
        return False, "Use a mix of upper and lower case characters."
    if not any(c.isdigit() for c in password):
        return False, "Include at least one digit."
    return True, None


def client_user_agent(limit: int = 255) -> str:
    return (request.headers.get("User-Agent") or "unknown")[:limit]
