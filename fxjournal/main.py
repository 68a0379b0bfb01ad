# fxjournal/main.py
import json
import logging
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, Request, Depends, Form, UploadFile, File, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, RedirectResponse, JSONResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from . import schemas
from .ai_service import AITradingAnalyzer, AIServiceError
from .auth import CredentialVerifier, StaticCredentialVerifier, create_access_token
from .auth_utils import COOKIE_NAME, LoginRequired, require_api_user, require_page_user
from .config import settings, configure_logging
from .database import Base, engine, SessionLocal
from .pnl import INSTRUMENTS, preview_trade
from .store import (
    JournalStore, SqlJournalRepository, AccountNotFoundError, TradeNotFoundError, NoActiveAccountError,
    PersistenceError,
)
from .utils import ScreenshotError, encode_screenshot, format_currency, trades_to_csv

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["currency"] = format_currency

TRADE_FORM_FIELDS = [
    "instrument", "position", "lot_size", "entry_price", "stop_loss",
    "take_profit", "outcome", "trade_date", "strategy", "notes",
]

# ==================== DEPENDENCIES ====================

def get_store(request: Request) -> JournalStore:
    return request.app.state.store


def get_verifier(request: Request) -> CredentialVerifier:
    return request.app.state.verifier


def get_analyzer(request: Request) -> AITradingAnalyzer:
    return request.app.state.analyzer


async def get_path_trade(trade_id: str, store: JournalStore = Depends(get_store)) -> schemas.Trade:
    """The trade named in the URL, looked up on the event loop before any threadpool work"""
    return store.get_trade(trade_id)


async def get_path_trade_account(
    trade: schemas.Trade = Depends(get_path_trade),
    store: JournalStore = Depends(get_store),
) -> schemas.Account:
    return store.get_account(trade.account_id)


def login_response(url: str, username: str) -> RedirectResponse:
    response = RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)
    set_login_cookie(response, username)
    return response


def set_login_cookie(response: Response, username: str):
    response.set_cookie(
        key=COOKIE_NAME,
        value=create_access_token(data={"sub": username}),
        httponly=True,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        secure=settings.is_production,
        samesite="lax",
    )


def error_message(exc: ValidationError) -> str:
    """First validation problem in a form, phrased for the user"""
    err = exc.errors()[0]
    field = " ".join(str(part) for part in err.get("loc", ())).replace("_", " ")
    return f"{field}: {err.get('msg')}" if field else err.get("msg", "Invalid input")


def create_app(
    store: Optional[JournalStore] = None,
    verifier: Optional[CredentialVerifier] = None,
    analyzer: Optional[AITradingAnalyzer] = None,
) -> FastAPI:
    configure_logging()
    if settings.is_production:
        settings.validate_settings()
    for line in settings.config_summary():
        logger.info(line)

    if store is None:
        Base.metadata.create_all(bind=engine)
        store = JournalStore(SqlJournalRepository(SessionLocal))

    app = FastAPI(title=settings.APP_NAME, version=settings.VERSION)
    app.state.store = store
    app.state.verifier = verifier or StaticCredentialVerifier.from_settings()
    app.state.analyzer = analyzer or AITradingAnalyzer.from_settings()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    register_pages(app)
    register_api(app)

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {"status": "ok", "message": f"{settings.APP_NAME} is running"}

    return app

# ==================== ERROR HANDLERS ====================

def register_error_handlers(app: FastAPI):
    @app.exception_handler(LoginRequired)
    async def login_required(request: Request, exc: LoginRequired):
        return RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)

    @app.exception_handler(AccountNotFoundError)
    @app.exception_handler(TradeNotFoundError)
    async def not_found(request: Request, exc: Exception):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(NoActiveAccountError)
    async def no_active_account(request: Request, exc: NoActiveAccountError):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_failed(request: Request, exc: PersistenceError):
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})

    @app.exception_handler(AIServiceError)
    async def ai_failed(request: Request, exc: AIServiceError):
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})

# ==================== HTML PAGES ====================

def register_pages(app: FastAPI):
    def trade_form_page(request: Request, store: JournalStore, values: dict, trade=None, error=None):
        return templates.TemplateResponse(request, "trade_form.html", {
            "active_account": store.active_account,
            "instruments": INSTRUMENTS,
            "values": values,
            "trade": trade,
            "error": error,
        }, status_code=status.HTTP_400_BAD_REQUEST if error else status.HTTP_200_OK)

    async def read_trade_form(form_data, screenshot: Optional[UploadFile], existing=None) -> schemas.TradeForm:
        data = {name: form_data.get(name, "") for name in TRADE_FORM_FIELDS}
        data["screenshot"] = existing.screenshot if existing else None
        if form_data.get("remove_screenshot"):
            data["screenshot"] = None
        if screenshot is not None and screenshot.filename:
            content = await screenshot.read()
            data["screenshot"] = encode_screenshot(content, screenshot.content_type)
        return schemas.TradeForm(**data)

    @app.get("/login", response_class=HTMLResponse)
    async def login_page(request: Request):
        """Login page"""
        return templates.TemplateResponse(request, "login.html", {"app_name": settings.APP_NAME})

    @app.post("/login")
    async def login(
        request: Request,
        username: str = Form(...),
        password: str = Form(...),
        verifier: CredentialVerifier = Depends(get_verifier),
    ):
        """Handle login form"""
        if not verifier.verify(username, password):
            logger.info("Failed login attempt for %r", username)
            return templates.TemplateResponse(request, "login.html", {
                "app_name": settings.APP_NAME,
                "username": username,
                "error": "Invalid username or password.",
            })
        return login_response("/dashboard", username)

    @app.get("/logout")
    async def logout():
        response = RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)
        response.delete_cookie(COOKIE_NAME)
        return response

    @app.get("/", response_class=HTMLResponse)
    async def home_page(user: str = Depends(require_page_user)):
        """Home page - redirects directly to dashboard"""
        return RedirectResponse(url="/dashboard")

    @app.get("/dashboard", response_class=HTMLResponse)
    async def dashboard_page(
        request: Request,
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        """Dashboard page"""
        if store.active_account is None:
            return RedirectResponse(url="/accounts/new", status_code=status.HTTP_303_SEE_OTHER)

        curve = store.equity_curve()
        return templates.TemplateResponse(request, "dashboard.html", {
            "user": user,
            "accounts": store.accounts,
            "active_account": store.active_account,
            "stats": store.stats(),
            "trades": store.sorted_trades(),
            "curve_labels": json.dumps([p.label for p in curve]),
            "curve_balances": json.dumps([p.balance for p in curve]),
        })

    @app.get("/accounts/new", response_class=HTMLResponse)
    async def account_form_page(
        request: Request,
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        return templates.TemplateResponse(request, "account_form.html", {
            "accounts": store.accounts,
            "account_types": list(schemas.AccountType),
            "values": {},
        })

    @app.post("/accounts")
    async def create_account_page(
        request: Request,
        name: str = Form(""),
        initial_balance: str = Form(""),
        account_type: str = Form(schemas.AccountType.LIVE.value),
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        values = {"name": name, "initial_balance": initial_balance, "account_type": account_type}
        try:
            data = schemas.AccountCreate(**values)
        except ValidationError as e:
            return templates.TemplateResponse(request, "account_form.html", {
                "accounts": store.accounts,
                "account_types": list(schemas.AccountType),
                "values": values,
                "error": error_message(e),
            }, status_code=status.HTTP_400_BAD_REQUEST)

        account = store.add_account(data)
        store.set_active_account(account.id)
        return RedirectResponse(url="/dashboard", status_code=status.HTTP_303_SEE_OTHER)

    @app.post("/accounts/active")
    async def switch_account_page(
        account_id: str = Form(...),
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        store.set_active_account(account_id)
        return RedirectResponse(url="/dashboard", status_code=status.HTTP_303_SEE_OTHER)

    @app.get("/trades/new", response_class=HTMLResponse)
    async def new_trade_page(
        request: Request,
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        if store.active_account is None:
            return RedirectResponse(url="/accounts/new", status_code=status.HTTP_303_SEE_OTHER)
        return trade_form_page(request, store, {})

    @app.post("/trades")
    async def create_trade_page(
        request: Request,
        screenshot: Optional[UploadFile] = File(None),
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        form_data = await request.form()
        try:
            form = await read_trade_form(form_data, screenshot)
        except (ValidationError, ScreenshotError) as e:
            message = error_message(e) if isinstance(e, ValidationError) else str(e)
            return trade_form_page(request, store, dict(form_data), error=message)

        store.add_trade(form)
        return RedirectResponse(url="/dashboard", status_code=status.HTTP_303_SEE_OTHER)

    @app.get("/trades/export")
    async def export_trades(
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        """CSV of the active account's trades"""
        return Response(
            trades_to_csv(store.sorted_trades()),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=trades.csv"},
        )

    @app.get("/trades/{trade_id}", response_class=HTMLResponse)
    async def trade_detail_page(
        request: Request,
        trade_id: str,
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        trade = store.get_trade(trade_id)
        return templates.TemplateResponse(request, "trade_detail.html", {
            "trade": trade,
            "account": store.get_account(trade.account_id),
        })

    @app.post("/trades/{trade_id}/analyze", response_class=HTMLResponse)
    def analyze_trade_page(
        request: Request,
        user: str = Depends(require_page_user),
        trade: schemas.Trade = Depends(get_path_trade),
        account: schemas.Account = Depends(get_path_trade_account),
        analyzer: AITradingAnalyzer = Depends(get_analyzer),
    ):
        """Trade detail with AI commentary, or the error so the user can retry"""
        analysis = None
        error = None
        try:
            analysis = analyzer.analyze_trade(trade)
        except AIServiceError as e:
            error = str(e)
        return templates.TemplateResponse(request, "trade_detail.html", {
            "trade": trade,
            "account": account,
            "analysis": analysis,
            "error": error,
        })

    @app.get("/trades/{trade_id}/edit", response_class=HTMLResponse)
    async def edit_trade_page(
        request: Request,
        trade_id: str,
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        trade = store.get_trade(trade_id)
        values = trade.model_dump(mode="json", include=set(TRADE_FORM_FIELDS))
        return trade_form_page(request, store, values, trade=trade)

    @app.post("/trades/{trade_id}")
    async def update_trade_page(
        request: Request,
        trade_id: str,
        screenshot: Optional[UploadFile] = File(None),
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        existing = store.get_trade(trade_id)
        form_data = await request.form()
        try:
            form = await read_trade_form(form_data, screenshot, existing=existing)
        except (ValidationError, ScreenshotError) as e:
            message = error_message(e) if isinstance(e, ValidationError) else str(e)
            return trade_form_page(request, store, dict(form_data), trade=existing, error=message)

        store.update_trade(trade_id, form)
        return RedirectResponse(url=f"/trades/{trade_id}", status_code=status.HTTP_303_SEE_OTHER)

    @app.post("/trades/{trade_id}/delete")
    async def delete_trade_page(
        trade_id: str,
        user: str = Depends(require_page_user),
        store: JournalStore = Depends(get_store),
    ):
        store.delete_trade(trade_id)
        return RedirectResponse(url="/dashboard", status_code=status.HTTP_303_SEE_OTHER)

    @app.get("/calendar", response_class=HTMLResponse)
    def calendar_page(
        request: Request,
        user: str = Depends(require_page_user),
        analyzer: AITradingAnalyzer = Depends(get_analyzer),
    ):
        """Today's economic calendar"""
        events = []
        error = None
        try:
            events = analyzer.fetch_economic_calendar()
        except AIServiceError as e:
            error = str(e)
        return templates.TemplateResponse(request, "calendar.html", {"events": events, "error": error})

# ==================== API ENDPOINTS ====================

def register_api(app: FastAPI):
    @app.post("/api/login")
    async def api_login(
        credentials: schemas.LoginRequest,
        verifier: CredentialVerifier = Depends(get_verifier),
    ):
        if not verifier.verify(credentials.username, credentials.password):
            return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED,
                                content={"detail": "Invalid username or password."})
        response = JSONResponse(content={"username": credentials.username})
        set_login_cookie(response, credentials.username)
        return response

    @app.post("/api/logout")
    async def api_logout():
        response = JSONResponse(content={"success": True})
        response.delete_cookie(COOKIE_NAME)
        return response

    @app.get("/api/accounts", response_model=List[schemas.Account])
    async def read_accounts(
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        return store.accounts

    @app.post("/api/accounts", response_model=schemas.Account, status_code=status.HTTP_201_CREATED)
    async def create_account(
        data: schemas.AccountCreate,
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        return store.add_account(data)

    @app.get("/api/accounts/active", response_model=Optional[schemas.Account])
    async def read_active_account(
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        return store.active_account

    @app.put("/api/accounts/active", response_model=Optional[schemas.Account])
    async def set_active_account(
        data: schemas.ActiveAccountUpdate,
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        store.set_active_account(data.account_id)
        return store.active_account

    @app.get("/api/trades", response_model=List[schemas.Trade])
    async def read_trades(
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        """Active account's trades, latest trade date first"""
        return store.sorted_trades()

    @app.post("/api/trades", response_model=schemas.Trade, status_code=status.HTTP_201_CREATED)
    async def create_trade(
        form: schemas.TradeForm,
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        return store.add_trade(form)

    @app.get("/api/trades/{trade_id}", response_model=schemas.Trade)
    async def read_trade(
        trade_id: str,
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        return store.get_trade(trade_id)

    @app.put("/api/trades/{trade_id}", response_model=schemas.Trade)
    async def update_trade(
        trade_id: str,
        form: schemas.TradeForm,
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        return store.update_trade(trade_id, form)

    @app.delete("/api/trades/{trade_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_trade(
        trade_id: str,
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        store.delete_trade(trade_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/api/pnl/preview", response_model=schemas.TradePreview)
    async def pnl_preview(
        data: schemas.PreviewRequest,
        user: str = Depends(require_api_user),
    ):
        """Live potential profit/loss while the trade form is being filled in"""
        return preview_trade(
            data.entry_price, data.stop_loss, data.take_profit,
            data.position, data.lot_size, data.instrument, data.outcome,
        )

    @app.get("/api/stats", response_model=schemas.StatsResponse)
    async def read_stats(
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        return store.stats()

    @app.get("/api/equity-curve", response_model=List[schemas.EquityPoint])
    async def read_equity_curve(
        user: str = Depends(require_api_user),
        store: JournalStore = Depends(get_store),
    ):
        return store.equity_curve()

    @app.post("/api/trades/{trade_id}/analysis", response_model=schemas.AnalysisResult)
    def analyze_trade(
        user: str = Depends(require_api_user),
        trade: schemas.Trade = Depends(get_path_trade),
        analyzer: AITradingAnalyzer = Depends(get_analyzer),
    ):
        return analyzer.analyze_trade(trade)

    @app.get("/api/calendar", response_model=List[schemas.EconomicEvent])
    def read_calendar(
        user: str = Depends(require_api_user),
        analyzer: AITradingAnalyzer = Depends(get_analyzer),
    ):
        return analyzer.fetch_economic_calendar()

    @app.get("/api/price", response_model=schemas.PriceResponse)
    def read_price(
        instrument: str = Query(..., description="Instrument, e.g. EUR/USD"),
        user: str = Depends(require_api_user),
        analyzer: AITradingAnalyzer = Depends(get_analyzer),
    ):
        return schemas.PriceResponse(instrument=instrument, price=analyzer.fetch_current_price(instrument))

    @app.get("/api/instruments")
    async def read_instruments(user: str = Depends(require_api_user)):
        return INSTRUMENTS


app = create_app()
