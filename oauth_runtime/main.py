"""
OAuth2 token runtime: token/authorization endpoints over a Redis-backed credential store.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from oauth_runtime.audit import AuditTrail
from oauth_runtime.audit import router as audit_router
from oauth_runtime.authorize import router as authorize_router
from oauth_runtime.config import KV_STORE_TIMEOUT_SECONDS, KV_STORE_URL
from oauth_runtime.credential_store import CredentialStore
from oauth_runtime.database import SessionLocal, init_db
from oauth_runtime.kv_store import create_kv_store
from oauth_runtime.registry import SqlApplicationRegistry
from oauth_runtime.revoke import router as revoke_router
from oauth_runtime.seed import seed_from_env
from oauth_runtime.service import TokenService
from oauth_runtime.token_endpoint import router as token_router
from oauth_runtime.verify import router as verify_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, seed from env, build the store and TokenService; close the store on shutdown."""
    init_db()
    db = SessionLocal()
    try:
        seed_from_env(db)
    finally:
        db.close()
    store = create_kv_store(KV_STORE_URL, timeout=KV_STORE_TIMEOUT_SECONDS)
    app.state.token_service = TokenService(
        SqlApplicationRegistry(SessionLocal),
        CredentialStore(store),
        logger=logging.getLogger("oauth_runtime.grants"),
        audit=AuditTrail(SessionLocal),
    )
    try:
        yield
    finally:
        await store.close()


app = FastAPI(title="OAuth Token Runtime", version="0.1.0", lifespan=lifespan)
app.include_router(authorize_router, tags=["authorize"])
app.include_router(token_router, tags=["token"])
app.include_router(revoke_router, tags=["invalidate"])
app.include_router(verify_router, tags=["verify"])
app.include_router(audit_router)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "oauth_runtime"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "oauth_runtime.main:app",
        host="127.0.0.1",
        port=9000,
        reload=True,
    )
