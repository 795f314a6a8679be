"""
Application registry: resolves client credentials to applications and validates redirect URIs.
The token runtime only reads from it.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from oauth_runtime.errors import StorageError
from oauth_runtime.models import Application
from oauth_runtime.seed import verify_password

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplicationRecord:
    app_id: str
    client_id: str
    redirect_uris: tuple[str, ...] = ()
    default_scope: str | None = None
    valid_scopes: frozenset[str] = frozenset()

    @classmethod
    def from_model(cls, app: Application) -> "ApplicationRecord":
        return cls(
            app_id=str(app.id),
            client_id=app.client_id,
            redirect_uris=tuple(app.get_redirect_uris_list()),
            default_scope=app.default_scope,
            valid_scopes=frozenset(app.get_valid_scopes_list()),
        )


class ApplicationRegistry(Protocol):
    async def get_app_for_credentials(self, client_id: str, client_secret: str | None) -> ApplicationRecord | None: ...

    async def get_app_for_client_id(self, client_id: str) -> ApplicationRecord | None: ...

    async def get_app_id_for_credentials(self, client_id: str, client_secret: str | None) -> str | None: ...

    async def check_redirect_uri(self, client_id: str, redirect_uri: str) -> bool: ...


class SqlApplicationRegistry:
    """
    Registry backed by the `applications` table. Queries and bcrypt checks are
    blocking, so they run in the threadpool rather than on the event loop.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _load(self, client_id: str, client_secret: str | None = None, check_secret: bool = False) -> ApplicationRecord | None:
        db = self._session_factory()
        try:
            app = db.query(Application).filter(Application.client_id == client_id).first()
            if app is None:
                return None
            if check_secret:
                if not client_secret or not verify_password(client_secret, app.client_secret_hash):
                    return None
            return ApplicationRecord.from_model(app)
        except SQLAlchemyError as exc:
            logger.warning("Registry lookup failed for client_id=%s: %s", client_id, exc)
            raise StorageError("Application registry unavailable") from exc
        finally:
            db.close()

    async def get_app_for_credentials(self, client_id: str, client_secret: str | None) -> ApplicationRecord | None:
        return await run_in_threadpool(self._load, client_id, client_secret, True)

    async def get_app_for_client_id(self, client_id: str) -> ApplicationRecord | None:
        return await run_in_threadpool(self._load, client_id)

    async def get_app_id_for_credentials(self, client_id: str, client_secret: str | None) -> str | None:
        app = await self.get_app_for_credentials(client_id, client_secret)
        return app.app_id if app else None

    async def check_redirect_uri(self, client_id: str, redirect_uri: str) -> bool:
        app = await self.get_app_for_client_id(client_id)
        return app is not None and redirect_uri in app.redirect_uris
