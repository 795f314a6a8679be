"""
Seed applications and users from environment. No hardcoded credentials.
Optional: OAUTH_CLIENT_ID + OAUTH_CLIENT_SECRET + OAUTH_REDIRECT_URIS (comma-separated),
OAUTH_VALID_SCOPES (space-separated), OAUTH_DEFAULT_SCOPE; OAUTH_SEED_USER + OAUTH_SEED_PASSWORD.
"""
import json
import logging
import os

import bcrypt
from sqlalchemy.orm import Session

from oauth_runtime.models import Application, User

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    # Bcrypt has a 72-byte limit
    raw = password.encode("utf-8")
    if len(raw) > 72:
        raw = raw[:72]
    return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    raw = plain.encode("utf-8")[:72]
    return bcrypt.checkpw(raw, hashed.encode("utf-8"))


def register_application(
    db: Session,
    client_id: str,
    client_secret: str,
    redirect_uris: list[str],
    valid_scopes: list[str] | None = None,
    default_scope: str | None = None,
) -> Application:
    """Create the application if client_id is not registered yet; return the stored row."""
    app = db.query(Application).filter(Application.client_id == client_id).first()
    if app is not None:
        logger.debug("Application already exists: %s", client_id)
        return app
    app = Application(
        client_id=client_id,
        client_secret_hash=hash_password(client_secret),
        redirect_uris=json.dumps(redirect_uris),
        valid_scopes=json.dumps(valid_scopes or []),
        default_scope=default_scope,
    )
    db.add(app)
    db.commit()
    db.refresh(app)
    logger.info("Registered application: %s", client_id)
    return app


def register_user(db: Session, username: str, password: str) -> User:
    user = db.query(User).filter(User.username == username).first()
    if user is not None:
        logger.debug("User already exists: %s", username)
        return user
    user = User(username=username, password_hash=hash_password(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Seeded user: %s", username)
    return user


def verify_user_credentials(db: Session, username: str, password: str) -> User | None:
    user = db.query(User).filter(User.username == username).first()
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def seed_from_env(db: Session) -> None:
    """Create one application and/or one user from env if set."""
    client_id = os.environ.get("OAUTH_CLIENT_ID")
    client_secret = os.environ.get("OAUTH_CLIENT_SECRET")
    redirect_uris_str = os.environ.get("OAUTH_REDIRECT_URIS", "")
    if client_id and client_secret:
        uris = [u.strip() for u in redirect_uris_str.split(",") if u.strip()]
        register_application(
            db,
            client_id,
            client_secret,
            uris,
            valid_scopes=os.environ.get("OAUTH_VALID_SCOPES", "").split(),
            default_scope=os.environ.get("OAUTH_DEFAULT_SCOPE") or None,
        )

    seed_user = os.environ.get("OAUTH_SEED_USER")
    seed_password = os.environ.get("OAUTH_SEED_PASSWORD")
    if seed_user and seed_password:
        register_user(db, seed_user, seed_password)
