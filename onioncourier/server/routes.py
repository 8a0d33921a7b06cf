"""
Routes for the onion gateway.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from onioncourier.common.exceptions import ValidationError
from onioncourier.common.models import (
    FileListResponse,
    LoginRequest,
    LoginResponse,
)
from onioncourier.server.domain.auth_handler import SessionRejected

from .services import GatewayService

if TYPE_CHECKING:
    from onioncourier.common.models import SessionData


class GatewayRoutes:
    """Handles FastAPI routes for the gateway."""

    def __init__(self, service: GatewayService):
        self.service = service
        self.header = service.config.SESSION_HEADER
        self.cookie = service.config.SESSION_COOKIE

    def setup_routes(self, app: FastAPI) -> None:
        """Setup API routes on the FastAPI app."""

        app.get("/health")(self.health)
        app.get("/api/onion")(self.onion_status)
        app.post("/login")(self.login)
        app.get("/files")(self.list_files)
        app.post("/upload")(self.upload)
        app.get("/download")(self.download)
        app.post("/delete")(self.delete)
        app.post("/cd")(self.change_directory)
        app.post("/mkdir")(self.make_directory)
        app.get("/cat")(self.view_file)
        app.post("/quit")(self.quit)

    def _session_id(self, request: Request) -> str | None:
        return request.headers.get(self.header) or request.cookies.get(self.cookie)

    def _rejected(self, err: ValidationError) -> HTTPException:
        headers = None
        if isinstance(err, SessionRejected) and err.session_id:
            headers = {
                self.header: err.session_id,
                "Set-Cookie": (
                    f"{self.cookie}={err.session_id}; HttpOnly; SameSite=Strict; Path=/"
                ),
            }
        return HTTPException(err.status_code, str(err), headers=headers)

    def session_context(self, request: Request) -> SessionData:
        """Dependency gating every file endpoint on an authenticated session."""
        try:
            return self.service.require_session(self._session_id(request))
        except ValidationError as e:
            raise self._rejected(e) from e

    async def health(self) -> dict[str, Any]:
        """Handle /health endpoint."""
        return self.service.health()

    async def onion_status(self) -> dict[str, str]:
        """Handle /api/onion endpoint."""
        try:
            return self.service.onion_status().model_dump(by_alias=True)
        except ValidationError as e:
            raise HTTPException(e.status_code, str(e))

    async def login(self, req: LoginRequest, request: Request) -> JSONResponse:
        """Handle /login endpoint."""
        try:
            session = self.service.login(self._session_id(request), req.key)
        except ValidationError as e:
            raise self._rejected(e) from e
        response = JSONResponse(
            LoginResponse(
                session_id=session.session_id, authenticated=session.authenticated
            ).model_dump()
        )
        response.set_cookie(
            self.cookie, session.session_id, httponly=True, samesite="strict"
        )
        return response

    def list_files(self, request: Request, path: str | None = None) -> FileListResponse:
        """Handle /files endpoint."""
        session = self.session_context(request)
        try:
            return self.service.list_files(session, path)
        except ValidationError as e:
            raise HTTPException(e.status_code, str(e))

    async def upload(
        self,
        request: Request,
        path: str | None = None,
    ) -> dict[str, Any]:
        """Handle /upload endpoint."""
        session = self.session_context(request)
        data = await request.body()
        try:
            stored = await run_in_threadpool(self.service.upload, session, path, data)
        except ValidationError as e:
            raise HTTPException(e.status_code, str(e))
        return {"path": stored, "size": len(data)}

    def download(self, request: Request, path: str | None = None) -> Response:
        """Handle /download endpoint."""
        session = self.session_context(request)
        try:
            name, data = self.service.download(session, path)
        except ValidationError as e:
            raise HTTPException(e.status_code, str(e))
        return Response(
            content=data,
            media_type="application/octet-stream",
            headers={"Content-Disposition": f'attachment; filename="{name}"'},
        )

    def delete(self, request: Request, path: str | None = None) -> dict[str, str]:
        """Handle /delete endpoint."""
        session = self.session_context(request)
        try:
            return {"deleted": self.service.delete(session, path)}
        except ValidationError as e:
            raise HTTPException(e.status_code, str(e))

    def change_directory(self, request: Request, path: str | None = None) -> dict[str, str]:
        """Handle /cd endpoint."""
        session = self.session_context(request)
        try:
            return {"cwd": self.service.change_directory(session, path)}
        except ValidationError as e:
            raise HTTPException(e.status_code, str(e))

    def make_directory(self, request: Request, path: str | None = None) -> dict[str, str]:
        """Handle /mkdir endpoint."""
        session = self.session_context(request)
        try:
            return {"created": self.service.make_directory(session, path)}
        except ValidationError as e:
            raise HTTPException(e.status_code, str(e))

    def view_file(self, request: Request, path: str | None = None) -> PlainTextResponse:
        """Handle /cat endpoint."""
        session = self.session_context(request)
        try:
            return PlainTextResponse(self.service.view_file(session, path))
        except ValidationError as e:
            raise HTTPException(e.status_code, str(e))

    async def quit(self, request: Request) -> JSONResponse:
        """Handle /quit endpoint."""
        session = self.session_context(request)
        self.service.quit(session)
        response = JSONResponse({"status": "closed"})
        response.delete_cookie(self.cookie)
        return response
