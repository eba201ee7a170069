from __future__ import annotations

from typing import Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import ValidationError

from agora_agents.deliberation import InvalidTransitionError, PreconditionError
from agora_core.logging_setup import setup_logging
from agora_core.record_store import RecordStoreError, SessionNotFoundError

from .sessions import SessionsAPI


def create_app(api: Optional[SessionsAPI] = None) -> FastAPI:
    api = api or SessionsAPI()
    setup_logging(api.settings.log_level)
    app = FastAPI(title="Agora API", version="0.1.0")

    @app.post("/api/sessions/{session_id}/start", status_code=202)
    def start_session(session_id: str, background_tasks: BackgroundTasks) -> dict:
        try:
            session = api.start_session(session_id)
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except InvalidTransitionError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except PreconditionError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RecordStoreError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        background_tasks.add_task(api.run_session, session)
        return {"session_id": session.id, "status": session.status.value}

    @app.post("/api/sessions/{session_id}/cancel")
    def cancel_session(session_id: str) -> dict:
        try:
            return api.cancel_session(session_id)
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.get("/api/sessions/{session_id}")
    def get_session(session_id: str) -> dict:
        try:
            return api.get_session(session_id)
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.post("/api/providers/test")
    def test_provider(payload: dict) -> dict:
        try:
            return api.test_provider(payload)
        except (ValidationError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
