"""
Read-only FastAPI server for inspecting a running client. Run with
run_api_server(app) in a background thread.
Endpoints: GET /api/session, GET /api/dashboard, GET /api/tasks.
Docs when enabled: http://<host>:<port>/docs
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI

logger = logging.getLogger(__name__)


def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to ISO string (UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def create_app(edusync_app: Any) -> FastAPI:
    """Create FastAPI app with routes reading from the given EduSyncApp (anything with session and loader)."""
    app = FastAPI(title="EduSync inspection API", description="Session and dashboard snapshot")

    @app.get("/api/session")
    def get_session() -> Dict[str, Any]:
        """Session state and user. The token itself is never exposed."""
        session = edusync_app.session
        return {
            "state": session.state,
            "authenticated": session.is_authenticated,
            "role": session.role,
            "user": session.user.model_dump() if session.user else None,
            "token_expires_at": _serialize_datetime(session.token_expiry()),
            "token_expired": session.is_expired() if session.token else None,
        }

    @app.get("/api/dashboard")
    def get_dashboard() -> Dict[str, Any]:
        """Latest loaded DashboardState."""
        return edusync_app.loader.state.model_dump(mode="json")

    @app.get("/api/tasks")
    def list_tasks() -> Dict[str, Any]:
        """Background jobs still running."""
        return {"active_tasks": edusync_app.task_manager.get_active_tasks()}

    return app


def run_api_server(edusync_app: Any) -> None:
    """
    Start the API server in a daemon thread if api.enabled is true.
    Reads api.host (default 127.0.0.1) and api.port (default 8765) from config.
    """
    api_config = edusync_app.config.data.get("api") or {}
    if not api_config.get("enabled", False):
        logger.info("API server not started: set api.enabled to true in your config file to enable.")
        return
    host = api_config.get("host", "127.0.0.1")
    port = int(api_config.get("port", 8765))
    fastapi_app = create_app(edusync_app)

    def run_uvicorn():
        try:
            import uvicorn
            logger.info(f"API server listening at http://{host}:{port} (docs at /docs)")
            uvicorn.run(fastapi_app, host=host, port=port, log_config=None)
        except Exception as e:
            logger.exception(f"API server thread failed: {e}")

    thread = threading.Thread(target=run_uvicorn, daemon=True)
    thread.start()
    logger.info("API server thread started.")
