import secrets

from flask import Request, session

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"


def ensure_csrf_token() -> str:
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = session[CSRF_SESSION_KEY] = secrets.token_urlsafe(32)
    return token


def _submitted_token(req: Request) -> str | None:
    # forms post a hidden field; fetch() callers send the header
    if req.headers.get(CSRF_HEADER):
        return req.headers[CSRF_HEADER]
    if req.form.get(CSRF_SESSION_KEY):
        return req.form[CSRF_SESSION_KEY]
    if req.is_json:
        return (req.get_json(silent=True) or {}).get(CSRF_SESSION_KEY)
    return None


def validate_csrf(req: Request) -> bool:
    """True when the submitted token matches the one held in the session."""
    submitted = _submitted_token(req)
    expected = session.get(CSRF_SESSION_KEY)
    if not submitted or not expected:
        return False
    return secrets.compare_digest(str(submitted), str(expected))
