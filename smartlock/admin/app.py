from __future__ import annotations

import html
import logging
import os
from typing import List, Optional

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from ..exceptions import ActuatorError, MalformedInput, StorageError
from ..storage import AccessEvent, AccessEventFilter, EventSource, Outcome, User
from .service import AdminService


logger = logging.getLogger(__name__)


# =========================
# Models
# =========================
class UserOut(BaseModel):
    label: int
    name: str
    image_path: Optional[str]
    updated_at: Optional[str] = None


class AccessEventOut(BaseModel):
    id: Optional[int]
    timestamp: str
    label: Optional[int]
    confidence: float
    image_path: Optional[str]
    outcome: str
    source: str
    image_persist_failed: bool
    error: Optional[str] = None


class UploadResponse(BaseModel):
    message: str
    user: UserOut


class CommandResponse(BaseModel):
    command: str
    lock_state: str
    event_id: Optional[int] = None


def _user_out(user: User) -> UserOut:
    return UserOut(label=user.label, name=user.name, image_path=user.image_path, updated_at=user.updated_at)


def _event_out(event: AccessEvent) -> AccessEventOut:
    return AccessEventOut(
        id=event.id,
        timestamp=event.timestamp,
        label=event.matched_label,
        confidence=event.confidence,
        image_path=event.captured_image_path,
        outcome=event.outcome.value,
        source=event.source.value,
        image_persist_failed=event.image_persist_failed,
        error=event.error,
    )


def _image_url(prefix: str, path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    return f"{prefix}/{html.escape(os.path.basename(path), quote=True)}"


def create_app(service: AdminService, engine=None) -> FastAPI:
    """
    Admin HTTP surface.

    Args:
        service: Store-backed enrollment / browsing operations
        engine: AccessControlEngine for remote unlock/lock (optional)
    """
    app = FastAPI(title="Smart Lock Admin", version="0.1.0")
    app.state.admin_service = service
    app.state.engine = engine

    app.mount("/user_images", StaticFiles(directory=service.user_images.root), name="user_images")
    app.mount("/access_images", StaticFiles(directory=service.access_images.root), name="access_images")

    # =========================
    # Pages
    # =========================
    @app.get("/manage_users", response_class=HTMLResponse)
    def manage_users():
        try:
            users = service.list_users()
        except StorageError as e:
            raise HTTPException(500, f"Storage error: {e}")

        items = []
        for user in users:
            thumb = _image_url("/user_images", user.image_path)
            img = f"<img src='{thumb}' width='100'>" if thumb else ""
            items.append(f"<li>{html.escape(user.name)} (Label: {user.label}) - {img}</li>")

        page = (
            "<html><body>"
            "<h1>Manage Users</h1>"
            "<form action='/upload_image' method='post' enctype='multipart/form-data'>"
            "Upload Image (Format: label_name.jpg): <input type='file' name='image'><br>"
            "<input type='submit' value='Upload Image'>"
            "</form>"
            "<h2>Registered Users</h2><ul>"
            + "".join(items)
            + "</ul></body></html>"
        )
        return HTMLResponse(page)

    @app.get("/access_log", response_class=HTMLResponse)
    def access_log(limit: int = Query(default=100, ge=1, le=10_000)):
        try:
            events = service.access_events(AccessEventFilter(limit=limit))
        except StorageError as e:
            raise HTTPException(500, f"Storage error: {e}")

        rows = []
        for event in events:
            thumb = _image_url("/access_images", event.captured_image_path)
            img = f"<img src='{thumb}' width='80'>" if thumb else ""
            label = "" if event.matched_label is None else str(event.matched_label)
            rows.append(
                "<tr>"
                f"<td>{html.escape(event.timestamp)}</td>"
                f"<td>{label}</td>"
                f"<td>{event.confidence:.2f}</td>"
                f"<td>{event.outcome.value}</td>"
                f"<td>{event.source.value}</td>"
                f"<td>{html.escape(event.error or '')}</td>"
                f"<td>{img}</td>"
                "</tr>"
            )

        page = (
            "<html><body><h1>Access Log</h1><table border='1'>"
            "<tr><th>Time</th><th>Label</th><th>Confidence</th><th>Outcome</th>"
            "<th>Source</th><th>Error</th><th>Image</th></tr>"
            + "".join(rows)
            + "</table></body></html>"
        )
        return HTMLResponse(page)

    # =========================
    # Enrollment
    # =========================
    @app.post("/upload_image", response_model=UploadResponse)
    def upload_image(image: Optional[UploadFile] = File(default=None)):
        # Sync route: face detection and LBPH retraining run in the threadpool
        if image is None or not image.filename:
            raise HTTPException(400, "No image uploaded.")

        content = image.file.read()
        try:
            user = service.enroll_from_upload(image.filename, content)
        except MalformedInput as e:
            logger.warning(f"Rejected upload '{image.filename}': {e}")
            raise HTTPException(400, str(e))
        except StorageError as e:
            logger.error(f"Upload '{image.filename}' failed: {e}")
            raise HTTPException(500, f"Storage error: {e}")

        return UploadResponse(
            message=f"Image uploaded and linked successfully: {user.image_path}",
            user=_user_out(user),
        )

    # =========================
    # JSON API
    # =========================
    @app.get("/api/users", response_model=List[UserOut])
    def list_users():
        try:
            return [_user_out(u) for u in service.list_users()]
        except StorageError as e:
            raise HTTPException(500, f"Storage error: {e}")

    @app.get("/api/access_events", response_model=List[AccessEventOut])
    def list_access_events(
        outcome: Optional[str] = None,
        label: Optional[int] = None,
        source: Optional[str] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        limit: int = Query(default=100, ge=1, le=10_000),
    ):
        try:
            event_filter = AccessEventFilter(
                outcome=Outcome(outcome) if outcome else None,
                label=label,
                source=EventSource(source) if source else None,
                since=since,
                until=until,
                limit=limit,
            )
        except ValueError as e:
            raise HTTPException(400, f"Invalid filter: {e}")

        try:
            return [_event_out(e) for e in service.access_events(event_filter)]
        except StorageError as e:
            raise HTTPException(500, f"Storage error: {e}")

    @app.post("/api/unlock", response_model=CommandResponse)
    def unlock():
        engine = _require_engine()
        result = engine.remote_unlock()
        if result.event.outcome is Outcome.DENIED_ERROR:
            raise HTTPException(500, f"Unlock failed: {result.event.error}")
        return CommandResponse(
            command="unlock",
            lock_state=engine.actuator.state.value,
            event_id=result.event.id,
        )

    @app.post("/api/lock", response_model=CommandResponse)
    def lock():
        engine = _require_engine()
        try:
            engine.remote_lock()
        except ActuatorError as e:
            raise HTTPException(500, f"Lock failed: {e}")
        return CommandResponse(command="lock", lock_state=engine.actuator.state.value)

    @app.get("/health")
    def health():
        body = {"status": "ok", "store": service.stats()}
        if engine is not None:
            body["engine_state"] = engine.state.value
            body["lock_state"] = engine.actuator.state.value
            body["lock"] = engine.actuator.get_stats()
        return body

    def _require_engine():
        if engine is None:
            raise HTTPException(503, "Lock engine not attached")
        return engine

    return app
