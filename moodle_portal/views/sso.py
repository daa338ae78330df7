"""
Single sign-on hand-off into the Moodle web UI
"""

from pyramid.view import view_config
from pyramid.httpexceptions import HTTPFound, HTTPBadRequest
from pyramid.renderers import render_to_response
import logging

from ..auth import require_session
from ..controller import Handoff
from . import page_context

log = logging.getLogger(__name__)


def _handoff_response(request, course_id=None):
    handoff = request.portal.begin_sso(course_id)

    if handoff.kind == Handoff.REDIRECT:
        log.info(f"[SSO] Redirecting {request.portal.session.username} into Moodle")
        return HTTPFound(location=handoff.url)

    if handoff.kind == Handoff.FORM:
        template = 'moodle_portal:templates/sso_form.jinja2'
    else:
        template = 'moodle_portal:templates/sso_manual.jinja2'
    return render_to_response(template, page_context(request, handoff=handoff), request=request)


@view_config(route_name='sso_dashboard', request_method='GET')
@require_session
def open_dashboard(request):
    return _handoff_response(request)


@view_config(route_name='sso_course', request_method='GET')
@require_session
def open_course(request):
    try:
        course_id = int(request.matchdict['course_id'])
    except ValueError:
        raise HTTPBadRequest('Invalid course ID')
    if course_id <= 0:
        raise HTTPBadRequest('Invalid course ID')
    return _handoff_response(request, course_id)
