from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Dict, List, Optional
import argparse
import logging
import threading
import uuid

from foundit_ai import FoundItService, ReportDraft, Session
from foundit_ai.common.config import Settings
from foundit_ai.common.errors import (FoundItError, NotFoundError,
                                      PermissionDeniedError, ValidationError)
from foundit_ai.common.schemas import Report, ReportType

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_id"
SESSION_MAX_AGE = 7 * 24 * 60 * 60


# Modelos
class LoginStartRequest(BaseModel):
    email: str

class LoginVerifyRequest(BaseModel):
    email: str
    otp: str
    name: str

class OpenChatRequest(BaseModel):
    own_report_id: Optional[str] = None

class AnswerRequest(BaseModel):
    answer: str

class MessageRequest(BaseModel):
    text: str

class HandoverConfirmRequest(BaseModel):
    code: str

class MuteRequest(BaseModel):
    muted: bool

class SubmitReportResponse(BaseModel):
    report: dict
    suggestions: List[dict] = []


def _public(report: Report) -> dict:
    return report.public_view()


class SessionRegistry:
    """Cookie session id -> user id, kept in memory like the login flow itself."""

    def __init__(self):
        self._sessions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def open(self, user_id: str) -> str:
        session_id = f"{uuid.uuid4().hex}_session"
        with self._lock:
            self._sessions[session_id] = user_id
        return session_id

    def user_id(self, session_id: Optional[str]) -> Optional[str]:
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def close(self, session_id: Optional[str]) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)


def create_app(service: Optional[FoundItService] = None) -> FastAPI:
    service = service or FoundItService.from_settings(Settings.from_env())
    sessions = SessionRegistry()

    app = FastAPI(title="FoundIt API", version="1.0.0")
    app.state.service = service
    app.state.sessions = sessions

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:9002", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FoundItError)
    async def foundit_error_handler(request: Request, exc: FoundItError):
        status = 400
        if isinstance(exc, NotFoundError):
            status = 404
        elif isinstance(exc, PermissionDeniedError):
            status = 403
        elif not isinstance(exc, ValidationError):
            status = 500
        logger.info(f"{request.method} {request.url.path} -> {status}: {exc}")
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    def current_session(req: Request) -> Session:
        user_id = sessions.user_id(req.cookies.get(SESSION_COOKIE))
        user = service.store.get("users", user_id) if user_id else None
        if user is None:
            raise HTTPException(status_code=401, detail="Login required")
        return Session(user=user)

    @app.get("/")
    async def root():
        return {"message": "FoundIt API is running"}

    # ─── login ─────────────────────────────────────────────────────────────

    @app.post("/api/auth/start")
    def login_start(request: LoginStartRequest):
        email = service.login.start(request.email)
        return {"message": f"We've sent a code to {email}."}

    @app.post("/api/auth/verify")
    def login_verify(request: LoginVerifyRequest, response: Response):
        service.login.verify(request.email, request.otp)
        user = service.login.complete_profile(request.email, request.name)

        session_id = sessions.open(user.id)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=session_id,
            httponly=True,
            max_age=SESSION_MAX_AGE,
            secure=False,
            samesite="Lax",
            path="/"
        )
        logger.info(f"Created new session for user_id: {user.id}")
        return {"user": user.model_dump(mode="json")}

    @app.post("/api/auth/logout")
    def logout(req: Request, response: Response):
        sessions.close(req.cookies.get(SESSION_COOKIE))
        response.delete_cookie(SESSION_COOKIE, path="/")
        return {"message": "Logged out"}

    # ─── reports ───────────────────────────────────────────────────────────

    @app.get("/api/reports")
    def list_reports(report_type: Optional[ReportType] = Query(None, alias="type"), search: str = ""):
        return [_public(r) for r in service.feed(type_filter=report_type, search=search)]

    @app.post("/api/reports", response_model=SubmitReportResponse)
    def submit_report(draft: ReportDraft, session: Session = Depends(current_session)):
        report, suggestions = service.submit_report(session, draft)
        return SubmitReportResponse(
            report=_public(report),
            suggestions=[{"match": s.match.model_dump(mode="json"), "report": _public(s.report)}
                         for s in suggestions],
        )

    @app.get("/api/reports/mine")
    def my_reports(session: Session = Depends(current_session)):
        return [_public(r) for r in service.my_reports(session)]

    @app.post("/api/reports/{report_id}/close")
    def close_report(report_id: str, session: Session = Depends(current_session)):
        return _public(service.close_report(session, report_id))

    @app.post("/api/reports/{report_id}/chat")
    def open_chat(report_id: str, request: Optional[OpenChatRequest] = None,
                  session: Session = Depends(current_session)):
        own_report_id = request.own_report_id if request else None
        match = service.open_chat(session, report_id, own_report_id)
        return service.match_detail(session, match.id)

    # ─── matches ───────────────────────────────────────────────────────────

    @app.get("/api/matches")
    def active_matches(session: Session = Depends(current_session)):
        return [service.match_detail(session, m.id) for m in service.active_matches(session)]

    @app.get("/api/matches/{match_id}")
    def match_detail(match_id: str, session: Session = Depends(current_session)):
        return service.match_detail(session, match_id)

    @app.post("/api/matches/{match_id}/claim")
    def claim_match(match_id: str, session: Session = Depends(current_session)):
        service.claim_suggestion(session, match_id)
        return service.match_detail(session, match_id)

    @app.post("/api/matches/{match_id}/verify")
    def verify(match_id: str, request: AnswerRequest, session: Session = Depends(current_session)):
        outcome = service.submit_answer(session, match_id, request.answer)
        return outcome.model_dump(mode="json")

    @app.get("/api/matches/{match_id}/messages")
    def messages(match_id: str, session: Session = Depends(current_session)):
        return [m.model_dump(mode="json") for m in service.messages(session, match_id)]

    @app.post("/api/matches/{match_id}/messages")
    def send_message(match_id: str, request: MessageRequest,
                     session: Session = Depends(current_session)):
        message = service.send_message(session, match_id, request.text)
        if message is None:
            raise HTTPException(status_code=409, detail="Chat is locked or closed")
        return message.model_dump(mode="json")

    # ─── handover ──────────────────────────────────────────────────────────

    @app.get("/api/matches/{match_id}/handover")
    def handover(match_id: str, session: Session = Depends(current_session)):
        return {"handover": service.handover_view(session, match_id)}

    @app.post("/api/matches/{match_id}/handover")
    def initiate_handover(match_id: str, session: Session = Depends(current_session)):
        view = service.initiate_handover(session, match_id)
        if view is None:
            raise HTTPException(status_code=409, detail="Handover needs a verified, open match")
        return {"handover": view}

    @app.post("/api/matches/{match_id}/handover/confirm")
    def confirm_handover(match_id: str, request: HandoverConfirmRequest,
                         session: Session = Depends(current_session)):
        accepted = service.confirm_handover(session, match_id, request.code)
        return {"accepted": accepted, "handover": service.handover_view(session, match_id)}

    # ─── notifications ─────────────────────────────────────────────────────

    @app.get("/api/notifications")
    def notifications(since: int = 0, session: Session = Depends(current_session)):
        return service.notifications(session, since)

    @app.post("/api/users/me/mute")
    def mute(request: MuteRequest, session: Session = Depends(current_session)):
        return {"user": service.set_muted(session, request.muted).model_dump(mode="json")}

    return app


def main():
    parser = argparse.ArgumentParser(description='FoundIt API Server')
    parser.add_argument('--port', type=int, default=8000, help='Port to run the server on')
    parser.add_argument('--host', default="0.0.0.0", help='Interface to bind')
    args = parser.parse_args()

    settings = Settings.from_env()

    handlers = [logging.StreamHandler()]
    if settings.log_file:
        handlers.insert(0, logging.FileHandler(settings.log_file))
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers
    )

    import uvicorn
    uvicorn.run(create_app(FoundItService.from_settings(settings)), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
