from pyramid.view import view_config
from pyramid.renderers import render_to_response
import logging

from ..auth import require_session
from . import page_context

log = logging.getLogger(__name__)


@view_config(route_name='users', request_method='GET',
             renderer='moodle_portal:templates/users.jinja2')
@require_session
def list_users(request):
    request.portal.switch_view('users')
    return page_context(request)


@view_config(route_name='create_user', request_method='GET',
             renderer='moodle_portal:templates/user_form.jinja2')
@require_session
def user_form(request):
    request.portal.switch_view('create_user')
    return page_context(request, values={})


@view_config(route_name='create_user', request_method='POST',
             renderer='moodle_portal:templates/user_form.jinja2')
@require_session
def create_user(request):
    portal = request.portal
    portal.switch_view('create_user')

    if portal.create_user(request.POST):
        log.info(f"User {request.POST.get('username')!r} created by {portal.session.username}")
        return render_to_response('moodle_portal:templates/users.jinja2',
                                  page_context(request), request=request)

    request.response.status = 400
    # Never echo the password back into the form
    values = {k: v for k, v in request.POST.items() if k != 'password'}
    return page_context(request, values=values)
