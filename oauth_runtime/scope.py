"""
Scope resolution against an application's registered scopes and an earlier grant.
"""
from oauth_runtime.errors import InvalidScopeError
from oauth_runtime.registry import ApplicationRecord


def resolve_scope(requested: str | None, app: ApplicationRecord) -> str | None:
    """
    Return the scope to grant. Absent (or blank) request -> app.default_scope.
    Otherwise every space-separated scope must be registered for the app; the
    requested string is returned unchanged so the caller's ordering is kept.
    """
    if not requested or not requested.strip():
        return app.default_scope
    invalid = [s for s in requested.split() if s not in app.valid_scopes]
    if invalid:
        raise InvalidScopeError(f"Invalid scope(s): {', '.join(invalid)}")
    return requested


def narrow_scope(requested: str | None, granted: str | None, app: ApplicationRecord) -> str | None:
    """
    Scope for a token derived from an earlier grant (refresh). Absent request -> granted.
    A requested scope must be registered for the app and contained in the granted scope.
    """
    if not requested or not requested.strip():
        return granted
    scope = resolve_scope(requested, app)
    allowed = set(granted.split()) if granted else set()
    wider = [s for s in scope.split() if s not in allowed]
    if wider:
        raise InvalidScopeError(f"Scope(s) not in original grant: {', '.join(wider)}")
    return scope
