import psycopg2
from flask import Blueprint, abort, current_app, redirect, request, url_for

from . import datastore_pg as _pg
from .builds import BUILD_FIELDS, CATEGORY_TITLES, TAB_TITLES, format_slider_value
from .dialogs import DialogKind
from .navigation import Section, parse_trigger
from .routes_auth import current_workspace, render_page, signin_required
from .standings import format_timestamp
from .tires import EVENT_FIELDS
from .tracks import TRACK_CONDITION_LABELS, WEATHER_LABELS, day_sections

bp = Blueprint('main', __name__)

SECTION_ENDPOINTS = {
    Section.HOME: 'main.home',
    Section.TRACKS: 'main.tracks',
    Section.TIRES: 'main.tires',
    Section.BUILD: 'main.build',
    Section.PROFILE: 'auth.profile',
}

# Triggers that can be fired without a payload, mapped to the module operation
NAV_ACTIONS = {
    ('tracks', 'openAdd'): ('tracks', 'open_add'),
    ('tracks', 'openDayEntry'): ('tracks', 'open_day_entry'),
    ('tracks', 'openSettings'): ('tracks', 'open_settings'),
    ('tracks', 'openStandings'): ('tracks', 'open_standings'),
    ('tracks', 'back'): ('tracks', 'back'),
    ('tires', 'openAdd'): ('tires', 'open_add_set'),
    ('tires', 'openAddEvent'): ('tires', 'open_add_event'),
    ('tires', 'back'): ('tires', 'back'),
    ('build', 'createNew'): ('builds', 'create_new'),
    ('build', 'loadSaved'): ('builds', 'show_saved'),
    ('build', 'back'): ('builds', 'back'),
}


def _to_section():
    ws = current_workspace()
    return redirect(url_for(SECTION_ENDPOINTS.get(ws.sections.active, 'main.home')))


def _enter(section):
    ws = current_workspace()
    if ws.sections.active is not section:
        ws.sections.switch(section.value)
    return ws


@bp.app_template_filter('when')
def _when(ms):
    return format_timestamp(ms)


@bp.route('/')
@signin_required
def home():
    ws = current_workspace()
    if ws.sections.active is not Section.HOME:
        ws.sections.switch(Section.HOME.value)
    return render_page('home.html', 'Home')


@bp.route('/section/<name>', methods=['GET', 'POST'])
@signin_required
def section(name):
    ws = current_workspace()
    if not ws.sections.switch(name):
        abort(404)
    return _to_section()


@bp.route('/nav/<area>/<trigger>', methods=['POST'])
@signin_required
def nav(area, trigger):
    ws = current_workspace()
    if ws.stack(area) is None or parse_trigger(trigger) is None:
        abort(404)
    action = NAV_ACTIONS.get((area, trigger))
    if action is None:
        abort(404)
    module_name, method = action
    getattr(getattr(ws, module_name), method)()
    return _to_section()


@bp.route('/modal/<kind>', methods=['POST'])
@signin_required
def modal(kind):
    ws = current_workspace()
    try:
        dialog_kind = DialogKind(kind)
    except ValueError:
        abort(404)
    accept = request.form.get('action') == 'accept'
    ws.dialogs.respond(dialog_kind, accept, request.form.get('value'))
    return _to_section()


# -- tracks ---------------------------------------------------------------

@bp.route('/tracks')
@signin_required
def tracks():
    ws = _enter(Section.TRACKS)
    module = ws.tracks
    track = module.current_track
    breadcrumbs = [('Tracks', url_for('main.tracks'))]
    if track is not None and ws.track_nav.active.value != 'history':
        breadcrumbs.append((track.get('name', ''), None))
    return render_page(
        'tracks.html',
        'Track History',
        breadcrumbs=breadcrumbs,
        module=module,
        panel=ws.track_nav.active.value,
        track=track,
        condition_fields=TRACK_CONDITION_LABELS + WEATHER_LABELS,
        day_sections=day_sections(module.viewed_day) if module.viewed_day else [],
        prefill=module.edit_prefill() if module.editing_day else {},
    )


@bp.route('/tracks/add', methods=['POST'])
@signin_required
def tracks_add():
    ws = current_workspace()
    ws.tracks.add_track(request.form.get('name', ''), request.form.get('location', ''))
    return redirect(url_for('main.tracks'))


@bp.route('/tracks/<track_id>/load', methods=['POST'])
@signin_required
def tracks_load(track_id):
    current_workspace().tracks.load_track(track_id)
    return redirect(url_for('main.tracks'))


@bp.route('/tracks/<track_id>/delete', methods=['POST'])
@signin_required
def tracks_delete(track_id):
    current_workspace().tracks.delete_track(track_id)
    return redirect(url_for('main.tracks'))


@bp.route('/tracks/settings', methods=['POST'])
@signin_required
def tracks_settings():
    form = request.form
    current_workspace().tracks.save_track_settings(
        form.get('name', ''), form.get('location', ''), form.get('notes', '')
    )
    return redirect(url_for('main.tracks'))


@bp.route('/tracks/days/add', methods=['POST'])
@signin_required
def days_add():
    current_workspace().tracks.add_day(request.form.to_dict())
    return redirect(url_for('main.tracks'))


@bp.route('/tracks/days/<day_id>/view', methods=['POST'])
@signin_required
def days_view(day_id):
    current_workspace().tracks.view_day(day_id)
    return redirect(url_for('main.tracks'))


@bp.route('/tracks/days/<day_id>/edit', methods=['POST'])
@signin_required
def days_edit(day_id):
    current_workspace().tracks.edit_day(day_id)
    return redirect(url_for('main.tracks'))


@bp.route('/tracks/days/save', methods=['POST'])
@signin_required
def days_save():
    form = request.form.to_dict()
    current_workspace().tracks.save_day_edit(form, form.get('timestamp'))
    return redirect(url_for('main.tracks'))


@bp.route('/tracks/days/<day_id>/delete', methods=['POST'])
@signin_required
def days_delete(day_id):
    current_workspace().tracks.delete_day(day_id)
    return redirect(url_for('main.tracks'))


@bp.route('/api/tracks/<track_id>/standings')
def api_standings(track_id):
    ws = current_workspace()
    if not ws.session.is_authenticated:
        return {'error': 'not signed in'}, 401
    result = ws.tracks.render_points_standings(track_id)
    if result is None:
        return {'error': 'standings unavailable'}, 503
    return {
        'trackId': track_id,
        'total': result['total'],
        'days': [
            {
                'id': d.get('id'),
                'raceName': d.get('raceName', ''),
                'createdAt': d.get('createdAt'),
                'pointsEarned': d.get('pointsEarned', 0),
            }
            for d in result['days']
        ],
    }


# -- tires ----------------------------------------------------------------

@bp.route('/tires')
@signin_required
def tires():
    ws = _enter(Section.TIRES)
    module = ws.tires
    breadcrumbs = [('Tires', url_for('main.tires'))]
    if module.current_set is not None and ws.tire_nav.active.value != 'history':
        breadcrumbs.append((module.current_set.get('setName', ''), None))
    if module.current_tire is not None and ws.tire_nav.active.value not in ('history', 'setDetails'):
        breadcrumbs.append((module.current_tire.get('tireName', ''), None))
    return render_page(
        'tires.html',
        'Tire History',
        breadcrumbs=breadcrumbs,
        module=module,
        panel=ws.tire_nav.active.value,
        event_fields=EVENT_FIELDS,
    )


@bp.route('/tires/sets/add', methods=['POST'])
@signin_required
def tire_sets_add():
    form = request.form
    current_workspace().tires.add_set(
        form.get('setName', ''), form.get('brand', ''), form.get('model', ''), form.get('quantity', '')
    )
    return redirect(url_for('main.tires'))


@bp.route('/tires/sets/<set_id>/load', methods=['POST'])
@signin_required
def tire_sets_load(set_id):
    current_workspace().tires.load_set(set_id)
    return redirect(url_for('main.tires'))


@bp.route('/tires/sets/<set_id>/delete', methods=['POST'])
@signin_required
def tire_sets_delete(set_id):
    current_workspace().tires.delete_set(set_id)
    return redirect(url_for('main.tires'))


@bp.route('/tires/add', methods=['POST'])
@signin_required
def tires_add():
    current_workspace().tires.add_tire(request.form.get('tireName', ''))
    return redirect(url_for('main.tires'))


@bp.route('/tires/<tire_id>/load', methods=['POST'])
@signin_required
def tires_load(tire_id):
    current_workspace().tires.load_tire(tire_id)
    return redirect(url_for('main.tires'))


@bp.route('/tires/<tire_id>/delete', methods=['POST'])
@signin_required
def tires_delete(tire_id):
    current_workspace().tires.delete_tire(tire_id)
    return redirect(url_for('main.tires'))


@bp.route('/tires/events/add', methods=['POST'])
@signin_required
def events_add():
    form = request.form.to_dict()
    apply_to_all = form.pop('applyToAll', '') in ('1', 'on', 'true')
    current_workspace().tires.add_event(form, apply_to_all=apply_to_all)
    return redirect(url_for('main.tires'))


@bp.route('/tires/events/<event_id>/view', methods=['POST'])
@signin_required
def events_view(event_id):
    current_workspace().tires.view_event(event_id)
    return redirect(url_for('main.tires'))


@bp.route('/tires/events/<event_id>/edit', methods=['POST'])
@signin_required
def events_edit(event_id):
    current_workspace().tires.edit_event(event_id)
    return redirect(url_for('main.tires'))


@bp.route('/tires/events/save', methods=['POST'])
@signin_required
def events_save():
    current_workspace().tires.save_event_edit(request.form.to_dict())
    return redirect(url_for('main.tires'))


@bp.route('/tires/events/<event_id>/delete', methods=['POST'])
@signin_required
def events_delete(event_id):
    current_workspace().tires.delete_event(event_id)
    return redirect(url_for('main.tires'))


# -- build ----------------------------------------------------------------

@bp.route('/build')
@signin_required
def build():
    ws = _enter(Section.BUILD)
    module = ws.builds
    return render_page(
        'build.html',
        'Build',
        module=module,
        panel=ws.build_nav.active.value,
        surface=module.surface,
        category_titles=CATEGORY_TITLES,
        tab_titles=TAB_TITLES,
        field_count=len(BUILD_FIELDS),
        format_slider_value=format_slider_value,
    )


@bp.route('/build/category/<category>', methods=['POST'])
@signin_required
def build_category(category):
    current_workspace().builds.pick_category(category)
    return redirect(url_for('main.build'))


@bp.route('/build/tab/<tab>', methods=['POST'])
@signin_required
def build_tab(tab):
    module = current_workspace().builds
    module.update_surface(request.form.to_dict())
    module.select_tab(tab)
    return redirect(url_for('main.build'))


@bp.route('/build/save', methods=['POST'])
@signin_required
def build_save():
    module = current_workspace().builds
    module.update_surface(request.form.to_dict())
    module.save_build()
    return redirect(url_for('main.build'))


@bp.route('/build/<build_id>/load', methods=['POST'])
@signin_required
def build_load(build_id):
    current_workspace().builds.load_build(build_id)
    return redirect(url_for('main.build'))


@bp.route('/build/<build_id>/delete', methods=['POST'])
@signin_required
def build_delete(build_id):
    current_workspace().builds.delete_build(build_id)
    return redirect(url_for('main.build'))


@bp.route('/health/db')
def health_db():
    """Document store connectivity check.

    Always returns HTTP 200 with a JSON body describing connection status and
    the number of stored documents per collection.
    """
    try:
        with _pg._get_conn() as conn, conn.cursor() as cur:
            cur.execute('SELECT current_user, current_database()')
            user, db = cur.fetchone()
            cur.execute('SELECT collection, COUNT(*) FROM documents GROUP BY collection')
            counts = {name: int(n) for name, n in cur.fetchall()}
        return {
            'connected': True,
            'status': 'ok',
            'user': user,
            'database': db,
            'documents': counts,
        }
    except (RuntimeError, psycopg2.Error) as e:
        current_app.logger.warning("health check failed: %s", e)
        return {
            'connected': False,
            'status': 'error',
            'error': str(e),
        }
