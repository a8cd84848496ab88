"""Sign-in, registration, profile and account settings pages.

Also owns the link between the signed Flask session cookie and the
in-process :class:`~racer_ready.session.Workspace` of each browser.
"""

from functools import wraps

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    g,
    redirect,
    render_template,
    request,
    session,
    url_for,
)

from . import auth
from . import profile as profile_module
from .datastore import StoreError
from .navigation import Section
from .session import drop_workspace, get_workspace, new_workspace_id

bp = Blueprint('auth', __name__)


def current_workspace():
    """Workspace of this browser, with its identity synced to the cookie.

    The workspace lock is taken on first use and held until the request is
    torn down, so requests from one browser run one at a time.
    """
    ws = getattr(g, "workspace", None)
    if ws is not None:
        return ws
    ws_id = session.get("workspace_id")
    if not ws_id:
        ws_id = new_workspace_id()
        session["workspace_id"] = ws_id
    ws = get_workspace(ws_id)
    ws.lock.acquire()
    g.workspace_lock = ws.lock
    g.workspace = ws
    uid = session.get("uid")
    if uid and (ws.session.identity is None or ws.session.identity.uid != uid):
        try:
            identity = auth.identity_for(uid)
        except StoreError:
            current_app.logger.exception("Error restoring identity %s", uid)
            abort(503, description="Your account could not be loaded right now. Please try again.")
        if identity is None:
            session.pop("uid", None)
            ws.sign_out()
        else:
            ws.sign_in(identity)
    elif not uid and ws.session.is_authenticated:
        ws.sign_out()
    return ws


@bp.teardown_app_request
def _release_workspace(exc=None):
    lock = g.pop("workspace_lock", None)
    if lock is not None:
        lock.release()


def signin_required(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        ws = current_workspace()
        if not ws.session.is_authenticated:
            return redirect(url_for('auth.signin', next=request.path))
        return func(*args, **kwargs)
    return wrapper


def render_page(template, title, breadcrumbs=None, **context):
    ws = current_workspace()
    return render_template(
        template,
        title=title,
        breadcrumbs=breadcrumbs or [(title, None)],
        ws=ws,
        identity=ws.session.identity,
        dialog=ws.dialogs.overlay,
        **context,
    )


def _safe_next(default_endpoint='main.home'):
    target = request.values.get('next') or ''
    if target.startswith('/') and not target.startswith('//'):
        return target
    return url_for(default_endpoint)


def _start(identity):
    ws = current_workspace()
    session["uid"] = identity.uid
    ws.sign_in(identity)
    ws.sections.switch(Section.HOME.value)


@bp.route('/signin', methods=['GET', 'POST'])
def signin():
    if request.method == 'POST':
        try:
            identity = auth.sign_in(request.form.get('email', ''), request.form.get('password', ''))
        except auth.AuthError as exc:
            current_app.logger.info("sign-in refused: %s", exc.code)
            flash(exc.message, 'warning')
            return render_page('signin.html', 'Sign In', email=request.form.get('email', '')), 400
        except StoreError:
            current_app.logger.exception("sign-in failed")
            flash('Sign-in is unavailable right now. Please try again.', 'error')
            return render_page('signin.html', 'Sign In'), 503
        _start(identity)
        return redirect(_safe_next())
    return render_page('signin.html', 'Sign In')


@bp.route('/register', methods=['GET', 'POST'])
def register():
    if request.method == 'POST':
        form = request.form
        try:
            identity = auth.register(
                form.get('email', ''), form.get('password', ''), form.get('confirm', '')
            )
        except auth.AuthError as exc:
            flash(exc.message, 'warning')
            return render_page('register.html', 'Create Account', email=form.get('email', '')), 400
        except StoreError:
            current_app.logger.exception("registration failed")
            flash('Registration is unavailable right now. Please try again.', 'error')
            return render_page('register.html', 'Create Account'), 503
        _start(identity)
        flash('Welcome to Racer Ready!', 'success')
        return redirect(url_for('main.home'))
    return render_page('register.html', 'Create Account')


@bp.route('/signout', methods=['POST'])
def signout():
    ws_id = session.get("workspace_id")
    if ws_id:
        drop_workspace(ws_id)
    session.clear()
    g.pop("workspace", None)
    return redirect(url_for('auth.signin'))


@bp.route('/profile', methods=['GET', 'POST'])
@signin_required
def profile():
    ws = current_workspace()
    ws.sections.switch(Section.PROFILE.value)
    if request.method == 'POST':
        try:
            profile_module.save_profile(ws.session, request.form, request.files.get('picture'))
        except profile_module.InvalidPicture as exc:
            flash(str(exc), 'warning')
            return redirect(url_for('auth.profile'))
        except StoreError:
            current_app.logger.exception("Error saving profile")
            flash('Error saving profile.', 'error')
            return redirect(url_for('auth.profile'))
        flash('Profile saved.', 'success')
        return redirect(url_for('auth.profile'))
    try:
        data = profile_module.load_profile(ws.session)
    except StoreError:
        current_app.logger.exception("Error loading profile")
        flash('Error loading profile.', 'error')
        data = {}
    return render_page('profile.html', 'Profile', profile=data)


@bp.route('/account/email', methods=['POST'])
@signin_required
def account_email():
    ws = current_workspace()
    try:
        identity = auth.change_email(
            ws.session.identity,
            request.form.get('current_password', ''),
            request.form.get('new_email', ''),
        )
    except auth.AuthError as exc:
        flash(exc.message, 'warning')
        return redirect(url_for('auth.profile'))
    except StoreError:
        current_app.logger.exception("Error changing email")
        flash('Error updating email.', 'error')
        return redirect(url_for('auth.profile'))
    ws.sign_in(identity)
    flash('Email updated.', 'success')
    return redirect(url_for('auth.profile'))


@bp.route('/account/password', methods=['POST'])
@signin_required
def account_password():
    ws = current_workspace()
    form = request.form
    if form.get('new_password', '') != form.get('confirm', ''):
        flash(auth.MESSAGES['auth/password-mismatch'], 'warning')
        return redirect(url_for('auth.profile'))
    try:
        auth.change_password(
            ws.session.identity, form.get('current_password', ''), form.get('new_password', '')
        )
    except auth.AuthError as exc:
        flash(exc.message, 'warning')
        return redirect(url_for('auth.profile'))
    except StoreError:
        current_app.logger.exception("Error changing password")
        flash('Error updating password.', 'error')
        return redirect(url_for('auth.profile'))
    flash('Password updated.', 'success')
    return redirect(url_for('auth.profile'))
