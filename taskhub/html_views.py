"""Server-rendered (no JavaScript) pages under /html_no_js.

Every mutating form posts and redirects back to a GET page. Authentication
errors raised by the dependencies are turned into redirects by the handlers
registered in ``main``.
"""
from pathlib import Path
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from urllib.parse import quote_plus

from . import config
from .auth import (
    SESSION_COOKIE,
    Identity,
    check_csrf,
    clear_session_cookie,
    create_csrf_token,
    create_session_for_user,
    delete_session,
    get_identity,
    register,
    require_csrf,
    require_guest_request,
    require_login,
    set_session_cookie,
    verify_credentials,
)
from .config import _trueish
from .errors import AuthFailure, DuplicateEmail, ValidationError
from .tasks import (
    PRIORITIES,
    create_task,
    delete_task_as,
    list_tasks_for,
    summary,
    update_task_as,
)
from .ranking import listing_owner
from .utils import format_dt

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/html_no_js')

TEMPLATES = Jinja2Templates(directory=str(Path(__file__).resolve().parent / 'templates'))
TEMPLATES.env.filters['dt'] = lambda d: (format_dt(d) or '')[:16].replace('T', ' ')
TEMPLATES.env.globals['config'] = config
TEMPLATES.env.globals['priorities'] = PRIORITIES


def _tasks_url(category: Optional[str] = None) -> str:
    if category:
        return f'/html_no_js/?category={quote_plus(category)}'
    return '/html_no_js/'


# ---------------- guest pages -----------------

@router.get('/login', response_class=HTMLResponse, dependencies=[Depends(require_guest_request)])
async def html_login_get(request: Request, status: Optional[str] = None):
    notice = 'Account created, you can log in now.' if status == 'success' else None
    return TEMPLATES.TemplateResponse(request, 'login.html', {'title': 'Login', 'notice': notice})


@router.post('/login', dependencies=[Depends(require_guest_request)])
async def html_login_post(request: Request, email: str = Form(''), password: str = Form('')):
    try:
        user = await verify_credentials(email, password)
    except AuthFailure as e:
        logger.info('html login failed')
        return TEMPLATES.TemplateResponse(
            request, 'login.html',
            {'title': 'Login', 'error': e.message, 'email': email},
            status_code=401,
        )
    session_token = await create_session_for_user(user)
    logger.info('html login user id=%s', user.id)
    # Set the cookie on the redirect itself so clients that follow
    # redirects pick it up for the next request.
    resp = RedirectResponse(url='/html_no_js/', status_code=303)
    set_session_cookie(resp, session_token)
    return resp


@router.get('/register', response_class=HTMLResponse, dependencies=[Depends(require_guest_request)])
async def html_register_get(request: Request):
    return TEMPLATES.TemplateResponse(request, 'register.html', {'title': 'Register', 'form': {}})


@router.post('/register', dependencies=[Depends(require_guest_request)])
async def html_register_post(
    request: Request,
    display_name: str = Form(''),
    phone: str = Form(''),
    email: str = Form(''),
    password: str = Form(''),
):
    form = {'display_name': display_name, 'phone': phone, 'email': email}
    try:
        await register(display_name, phone, email, password)
    except (ValidationError, DuplicateEmail) as e:
        errors = getattr(e, 'errors', None) or {}
        return TEMPLATES.TemplateResponse(
            request, 'register.html',
            {'title': 'Register', 'error': e.message, 'errors': errors, 'form': form},
            status_code=e.status_code,
        )
    return RedirectResponse(url='/html_no_js/login?status=success', status_code=303)


@router.post('/logout')
async def html_logout(request: Request, identity: Optional[Identity] = Depends(get_identity)):
    if identity is not None:
        await check_csrf(request, identity)
    await delete_session(request.cookies.get(SESSION_COOKIE))
    logger.info('html logout')
    resp = RedirectResponse(url='/html_no_js/login', status_code=303)
    clear_session_cookie(resp)
    return resp


# ---------------- task pages -----------------

def _category_tabs(category: Optional[str] = None) -> list[str]:
    # configured tabs, plus the one being viewed if it is a custom label
    categories = list(config.CATEGORIES)
    if category and category not in categories:
        categories.append(category)
    return categories


def _tasks_page(request: Request, identity: Identity, tasks, category: Optional[str] = None, status_code: int = 200, **extra):
    ctx = {
        'title': 'Tasks',
        'identity': identity,
        'csrf_token': create_csrf_token(identity.user_id),
        'tasks': tasks,
        'category': category,
        'categories': _category_tabs(category),
    }
    ctx.update(extra)
    return TEMPLATES.TemplateResponse(request, 'tasks.html', ctx, status_code=status_code)


@router.get('/', response_class=HTMLResponse)
async def html_tasks(request: Request, category: Optional[str] = None, identity: Identity = Depends(require_login)):
    tasks = await list_tasks_for(identity, category=category)
    return _tasks_page(request, identity, tasks, category)


@router.post('/tasks/create')
async def html_create_task(
    request: Request,
    title: str = Form(''),
    description: str = Form(''),
    priority: str = Form(''),
    category: str = Form(''),
    identity: Identity = Depends(require_csrf),
):
    fields = {'title': title, 'description': description, 'priority': priority or None, 'category': category or None}
    try:
        task = await create_task(identity.user_id, fields)
    except ValidationError as e:
        tasks = await list_tasks_for(identity, category=category or None)
        return _tasks_page(request, identity, tasks, category or None, status_code=400, error=e.message, form=fields)
    return RedirectResponse(url=_tasks_url(task.category), status_code=303)


@router.post('/tasks/{task_id}/complete')
async def html_toggle_complete(
    task_id: int,
    completed: str = Form('true'),
    back: str = Form(''),
    identity: Identity = Depends(require_csrf),
):
    await update_task_as(identity, task_id, {'completed': _trueish(completed)})
    return RedirectResponse(url=_tasks_url(back or None), status_code=303)


@router.post('/tasks/{task_id}/delete')
async def html_delete_task(task_id: int, back: str = Form(''), identity: Identity = Depends(require_csrf)):
    await delete_task_as(identity, task_id)
    return RedirectResponse(url=_tasks_url(back or None), status_code=303)


@router.get('/dashboard', response_class=HTMLResponse)
async def html_dashboard(request: Request, identity: Identity = Depends(require_login)):
    stats = await summary(owner_id=listing_owner(identity))
    return TEMPLATES.TemplateResponse(request, 'dashboard.html', {
        'title': 'Dashboard',
        'identity': identity,
        'csrf_token': create_csrf_token(identity.user_id),
        'stats': stats,
    })
