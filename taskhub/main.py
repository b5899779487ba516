from fastapi import FastAPI, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel
from typing import Optional
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import sys
import time
import uuid

from . import config
from .auth import (
    SESSION_COOKIE,
    Identity,
    clear_session_cookie,
    create_access_token,
    create_session_for_user,
    delete_session,
    require_guest_request,
    require_login,
    register,
    set_session_cookie,
    verify_credentials,
)
from .db import init_db, ping_db
from .errors import AlreadyAuthenticated, NotAuthenticated, TaskHubError, ValidationError
from .export import report_payload, tasks_to_csv, tasks_to_json
from .html_views import TEMPLATES, router as html_router
from .tasks import (
    create_task,
    delete_task_as,
    get_task_as,
    list_tasks_for,
    serialize_task,
    summary,
    update_task_as,
)
from .ranking import listing_owner
from .utils import format_dt

logger = logging.getLogger(__name__)
# Ensure INFO-level messages from the app appear on the server console when
# no handlers are configured (safe fallback for development/testing).
_pkg_logger = logging.getLogger('taskhub')
if not _pkg_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s')
    handler.setFormatter(formatter)
    _pkg_logger.addHandler(handler)
_pkg_logger.setLevel(logging.INFO)

HTML_PREFIX = '/html_no_js'
_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Refuse to start with the test fallback secret; tokens signed with a
    # known key could be forged.
    from .auth import SECRET_KEY as _SECRET_KEY
    if not _SECRET_KEY or _SECRET_KEY == "CHANGE_ME_IN_ENV_FOR_TESTS":
        raise RuntimeError("SECRET_KEY not set or insecure fallback in use; set the SECRET_KEY environment variable before starting the server")
    await init_db()
    logger.info('%s %s started (dev_mode=%s)', config.APP_NAME, config.APP_VERSION, config.DEV_MODE)
    yield
    logger.info('%s stopping', config.APP_NAME)


app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION, lifespan=lifespan)
app.include_router(html_router)


@app.middleware('http')
async def timing_middleware(request: Request, call_next):
    request.state.request_id = uuid.uuid4().hex[:12]
    start = time.perf_counter()
    resp = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000.0
    resp.headers['X-Request-ID'] = request.state.request_id
    logger.info('timing %s %s %s %.1fms', request.method, request.url.path, request.url.query, duration_ms)
    return resp


@app.middleware("http")
async def no_cache_dynamic(request: Request, call_next):
    """Set conservative no-cache headers for pages and API responses."""
    resp = await call_next(request)
    content_type = resp.headers.get('content-type', '')
    if 'text/html' in content_type or 'application/json' in content_type:
        cc = resp.headers.get('Cache-Control', '')
        if 'no-store' not in cc.lower():
            resp.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate'
        resp.headers['Pragma'] = 'no-cache'
    return resp


# ---------------- error handling -----------------

def _is_page_request(request: Request) -> bool:
    return request.url.path.startswith(HTML_PREFIX)


def _error_id(request: Request) -> str:
    return getattr(request.state, 'request_id', None) or uuid.uuid4().hex[:12]


def _envelope(message: str, status_code: int, **extra) -> JSONResponse:
    payload = {'success': False, 'message': message}
    payload.update(extra)
    return JSONResponse(payload, status_code=status_code)


@app.exception_handler(TaskHubError)
async def taskhub_error_handler(request: Request, exc: TaskHubError):
    extra = {}
    if exc.status_code >= 500:
        # server-side failures carry the request id so logs can be matched
        extra['error_id'] = _error_id(request)
        logger.error('request failed error_id=%s: %s', extra['error_id'], exc.message)
        if config.DEV_MODE:
            extra['detail'] = str(exc.__cause__ or exc.message)
    if _is_page_request(request):
        if isinstance(exc, NotAuthenticated):
            return RedirectResponse(url=f'{HTML_PREFIX}/login', status_code=303)
        if isinstance(exc, AlreadyAuthenticated):
            return RedirectResponse(url=f'{HTML_PREFIX}/', status_code=303)
        return TEMPLATES.TemplateResponse(
            request, 'error.html',
            {'title': 'Error', 'message': exc.message, 'status_code': exc.status_code,
             'error_id': extra.get('error_id'), 'detail': extra.get('detail')},
            status_code=exc.status_code,
        )
    if isinstance(exc, ValidationError) and exc.errors:
        extra['errors'] = exc.errors
    return _envelope(exc.message, exc.status_code, **extra)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get('loc', ()) if p not in ('body', 'query', 'path')]
        errors['.'.join(loc) or 'request'] = err.get('msg', 'invalid value')
    return _envelope('invalid request', status.HTTP_400_BAD_REQUEST, errors=errors)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else 'request failed'
    if _is_page_request(request):
        return TEMPLATES.TemplateResponse(
            request, 'error.html',
            {'title': 'Error', 'message': message, 'status_code': exc.status_code},
            status_code=exc.status_code,
        )
    return _envelope(message, exc.status_code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    error_id = _error_id(request)
    logger.exception('unhandled error error_id=%s %s %s', error_id, request.method, request.url.path)
    extra = {'error_id': error_id}
    if config.DEV_MODE:
        extra['detail'] = str(exc)
    if _is_page_request(request):
        return TEMPLATES.TemplateResponse(
            request, 'error.html',
            {'title': 'Server error', 'message': 'Something went wrong on our side.', 'status_code': 500,
             'error_id': error_id, 'detail': extra.get('detail')},
            status_code=500,
        )
    return _envelope('internal server error', status.HTTP_500_INTERNAL_SERVER_ERROR, **extra)


# ---------------- auth endpoints -----------------

class RegisterRequest(BaseModel):
    display_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


def _serialize_user(user) -> dict:
    return {
        'id': user.id,
        'display_name': user.display_name,
        'phone': user.phone,
        'email': user.email,
        'role': user.role,
        'created_at': format_dt(user.created_at),
    }


@app.post('/register', status_code=201, dependencies=[Depends(require_guest_request)])
async def api_register(req: RegisterRequest):
    user = await register(req.display_name, req.phone, req.email, req.password, role=req.role)
    return JSONResponse({'success': True, 'data': _serialize_user(user)}, status_code=201)


@app.post('/login', dependencies=[Depends(require_guest_request)])
async def api_login(req: LoginRequest):
    try:
        user = await verify_credentials(req.email or '', req.password or '')
    except TaskHubError:
        logger.info('login failed')
        raise
    session_token = await create_session_for_user(user)
    logger.info('login user id=%s', user.id)
    resp = JSONResponse({'success': True, 'data': {'user_id': user.id, 'role': user.role, 'display_name': user.display_name}})
    set_session_cookie(resp, session_token)
    return resp


@app.post('/logout')
async def api_logout(request: Request):
    await delete_session(request.cookies.get(SESSION_COOKIE))
    logger.info('logout')
    resp = JSONResponse({'success': True, 'message': 'logged out'})
    clear_session_cookie(resp)
    return resp


@app.post('/auth/token')
async def login_for_access_token(req: LoginRequest):
    user = await verify_credentials(req.email or '', req.password or '')
    access_token = create_access_token(data={'sub': str(user.id)})
    return {'access_token': access_token, 'token_type': 'bearer'}


@app.get('/me')
async def whoami(identity: Identity = Depends(require_login)):
    return {'success': True, 'data': identity.model_dump()}


# ---------------- task endpoints -----------------

async def _json_body(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError(message='invalid JSON')
    if not isinstance(payload, dict):
        raise ValidationError(message='JSON object expected')
    return payload


@app.get('/tasks')
async def api_list_tasks(category: Optional[str] = None, owner: Optional[int] = None, identity: Identity = Depends(require_login)):
    tasks = await list_tasks_for(identity, category=category, owner=owner)
    return {'success': True, 'data': [serialize_task(t) for t in tasks]}


@app.post('/tasks', status_code=201)
async def api_create_task(request: Request, identity: Identity = Depends(require_login)):
    payload = await _json_body(request)
    task = await create_task(identity.user_id, payload)
    return JSONResponse({'success': True, 'data': serialize_task(task)}, status_code=201)


@app.get('/tasks/export.csv')
async def api_export_csv(category: Optional[str] = None, owner: Optional[int] = None, identity: Identity = Depends(require_login)):
    tasks = await list_tasks_for(identity, category=category, owner=owner)
    stamp = datetime.now(timezone.utc).strftime('%Y%m%d')
    return Response(
        content=tasks_to_csv(tasks).encode('utf-8'),
        media_type='text/csv; charset=utf-8',
        headers={'Content-Disposition': f'attachment; filename="tasks-{stamp}.csv"'},
    )


@app.get('/tasks/export.json')
async def api_export_json(category: Optional[str] = None, owner: Optional[int] = None, identity: Identity = Depends(require_login)):
    tasks = await list_tasks_for(identity, category=category, owner=owner)
    stamp = datetime.now(timezone.utc).strftime('%Y%m%d')
    return Response(
        content=tasks_to_json(tasks).encode('utf-8'),
        media_type='application/json',
        headers={'Content-Disposition': f'attachment; filename="tasks-{stamp}.json"'},
    )


@app.get('/tasks/report')
async def api_report(category: Optional[str] = None, owner: Optional[int] = None, identity: Identity = Depends(require_login)):
    stats = await summary(owner_id=listing_owner(identity, owner), category=category)
    return {'success': True, 'data': report_payload(stats)}


@app.get('/tasks/{task_id}')
async def api_get_task(task_id: int, identity: Identity = Depends(require_login)):
    task = await get_task_as(identity, task_id)
    return {'success': True, 'data': serialize_task(task)}


@app.put('/tasks/{task_id}')
async def api_update_task(task_id: int, request: Request, identity: Identity = Depends(require_login)):
    payload = await _json_body(request)
    task = await update_task_as(identity, task_id, payload)
    return {'success': True, 'data': serialize_task(task)}


@app.delete('/tasks/{task_id}')
async def api_delete_task(task_id: int, identity: Identity = Depends(require_login)):
    await delete_task_as(identity, task_id)
    return {'success': True, 'message': 'task deleted', 'data': {}}


# ---------------- status -----------------

async def _status_payload() -> dict:
    return {
        'status': 'online',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'uptime': round(time.monotonic() - _started_at, 3),
        'version': config.APP_VERSION,
        'dev_mode': config.DEV_MODE,
        'database': 'connected' if await ping_db() else 'unavailable',
    }


@app.get('/health')
async def health():
    return await _status_payload()


@app.get('/api/status')
async def api_status():
    return {'success': True, 'data': await _status_payload()}


@app.get('/')
async def root_redirect():
    return RedirectResponse(url=f'{HTML_PREFIX}/')
