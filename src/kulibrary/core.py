import logging
from datetime import datetime, timezone
from typing import Annotated
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Depends, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import create_engine, SQLModel, Session
from apscheduler.schedulers.background import BackgroundScheduler

from . import auth, fixtures
from .config import Settings, load_settings
from .errors import LibraryError, InternalError, Unauthorized, ValidationError
from .service import LibraryService
from .models import User
from .models import (
    LoginPayload,
    BorrowPayload,
    LoanActionPayload,
    BookResp,
    LoanResp,
    LoginResp,
    VerifyResp,
    LoanResultResp,
    MemberResp,
    StatsResp,
    SuccessResp,
    ErrorResp,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    401: {"model": ErrorResp},
    404: {"model": ErrorResp},
    409: {"model": ErrorResp},
    422: {"model": ErrorResp},
}


class LibraryCORSMiddleware(CORSMiddleware):
    """Answers accepted preflights with headers only, no body."""

    def preflight_response(self, request_headers) -> Response:
        response = super().preflight_response(request_headers)
        if response.status_code != 200:
            return response
        headers = {
            k: v
            for k, v in response.headers.items()
            if k not in ("content-length", "content-type")
        }
        return Response(status_code=200, headers=headers)


def make_engine(database_url: str):
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args)


def get_dbsession(request: Request):
    with Session(request.app.state.db_engine) as session:
        yield session


DbSessDep = Annotated[Session, Depends(get_dbsession)]


def get_service(request: Request, dbsession: DbSessDep) -> LibraryService:
    return LibraryService(dbsession, request.app.state.settings)


ServiceDep = Annotated[LibraryService, Depends(get_service)]


def bearer_token(authorization: str | None = Header(None)) -> str:
    if token := auth.parse_bearer(authorization):
        return token
    raise Unauthorized("Authentication required")


TokenDep = Annotated[str, Depends(bearer_token)]


def verify_session(service: ServiceDep, token: TokenDep) -> User:
    return service.verify(token)


UserDep = Annotated[User, Depends(verify_session)]


@router.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.post("/api/auth/login", response_model=LoginResp, responses=ERROR_RESPONSES)
def login(payload: LoginPayload, service: ServiceDep):
    return service.login(payload.email, payload.password)


@router.post("/api/auth/logout", response_model=SuccessResp)
def logout(service: ServiceDep, token: TokenDep):
    service.logout(token)
    return SuccessResp()


@router.get("/api/auth/verify", response_model=VerifyResp, responses=ERROR_RESPONSES)
def verify(service: ServiceDep, user: UserDep):
    return service.profile(user)


@router.get("/api/books", response_model=list[BookResp])
def list_books(service: ServiceDep, q: str | None = Query(None)):
    return service.list_books(q)


@router.get("/api/books/{book_id}", response_model=BookResp, responses=ERROR_RESPONSES)
def get_book(book_id: int, service: ServiceDep):
    return service.get_book(book_id)


@router.post(
    "/api/books/borrow", response_model=LoanResultResp, responses=ERROR_RESPONSES
)
def borrow(payload: BorrowPayload, service: ServiceDep, user: UserDep):
    return service.borrow(user, payload.book_id)


@router.post(
    "/api/books/return", response_model=LoanResultResp, responses=ERROR_RESPONSES
)
def return_book(payload: LoanActionPayload, service: ServiceDep, user: UserDep):
    return service.return_book(user, payload.loan_id)


@router.post(
    "/api/books/renew", response_model=LoanResultResp, responses=ERROR_RESPONSES
)
def renew(payload: LoanActionPayload, service: ServiceDep, user: UserDep):
    return service.renew(user, payload.loan_id)


@router.get("/api/loans", response_model=list[LoanResp], responses=ERROR_RESPONSES)
def my_loans(service: ServiceDep, user: UserDep, active: bool = Query(False)):
    return service.list_loans(user, active_only=active)


@router.get("/api/stats", response_model=StatsResp)
def stats(service: ServiceDep):
    return service.stats()


@router.get("/api/members", response_model=list[MemberResp], responses=ERROR_RESPONSES)
def members(service: ServiceDep, user: UserDep):
    return service.members(user)


async def library_error_handler(_: Request, exc: LibraryError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def request_validation_handler(_: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        where = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{where}: {err.get('msg')}" if where else err.get("msg"))
    error = ValidationError("; ".join(problems) or None)
    return JSONResponse(error.to_dict(), status_code=error.status_code)


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    error = InternalError()
    return JSONResponse(error.to_dict(), status_code=error.status_code)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    db_engine = app.state.db_engine
    SQLModel.metadata.create_all(db_engine)
    if settings.seed_demo:
        fixtures.seed_demo_data(db_engine)
    scheduler = None
    if settings.session_sweep_minutes:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            auth.clear_expired_sessions,
            "interval",
            args=[db_engine],
            minutes=settings.session_sweep_minutes,
        )
        scheduler.start()
    yield
    if scheduler is not None:
        scheduler.shutdown()


def create_app(settings: Settings | None = None) -> FastAPI:
    if settings is None:
        settings = load_settings()
    app = FastAPI(title="KU Library API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db_engine = make_engine(settings.database_url)
    app.add_middleware(
        LibraryCORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(LibraryError, library_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    app.include_router(router)
    return app


app = create_app()
