"""Security helpers for headers, input sanitation and password policy."""
import html
from typing import Mapping

import bleach
from flask import request
from werkzeug.datastructures import MultiDict


def sanitize_input(data: Mapping) -> dict:
    """Return an escaped copy of query arguments used in filters."""
    sanitized = {}
    for key, value in data.items():
        sanitized[html.escape(str(key))] = html.escape(str(value))
    return sanitized


def clean_text(value) -> str:
    """Strip markup from user-supplied free text and trim surrounding whitespace.

    The result is bleach's escaped output: a bare "&" or "<" is stored as an
    entity, and entities already present are kept verbatim.
    """
    if value is None:
        return ""
    return bleach.clean(str(value), tags=[], attributes={}, strip=True).strip()


def apply_security_headers(response, force_https: bool = False):
    """Headers for a JSON API that is never framed or rendered as HTML."""
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Cache-Control", "no-store")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    return response


def password_meets_policy(password: str) -> tuple[bool, str | None]:
    if len(password) < 12:
        return False, "Password must be at least 12 characters long."
    if password.lower() == password or password.upper() == password:
        return False, "Use a mix of upper and lower case characters."
    if not any(c.isdigit() for c in password):
        return False, "Include at least one digit."
    if not any(c in "!@#$%^&*()-_=+[]{}|;:,.<>?/" for c in password):
        return False, "Include at least one symbol."
    return True, None


def json_form_data(payload: Mapping) -> MultiDict:
    """Form data for WTForms built from the string values of a JSON object."""
    return MultiDict({key: value for key, value in payload.items() if isinstance(value, str)})
