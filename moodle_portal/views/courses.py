from pyramid.view import view_config
from pyramid.renderers import render_to_response
import logging

from ..auth import require_session
from . import page_context

log = logging.getLogger(__name__)


@view_config(route_name='courses', request_method='GET',
             renderer='moodle_portal:templates/courses.jinja2')
@require_session
def list_courses(request):
    """All courses visible to the portal token, site page excluded"""
    request.portal.switch_view('courses')
    return page_context(request)


@view_config(route_name='my_courses', request_method='GET',
             renderer='moodle_portal:templates/my_courses.jinja2')
@require_session
def list_my_courses(request):
    request.portal.switch_view('my_courses')
    return page_context(request)


@view_config(route_name='create_course', request_method='GET',
             renderer='moodle_portal:templates/course_form.jinja2')
@require_session
def course_form(request):
    request.portal.switch_view('create_course')
    return page_context(request, values={})


@view_config(route_name='create_course', request_method='POST',
             renderer='moodle_portal:templates/course_form.jinja2')
@require_session
def create_course(request):
    portal = request.portal
    portal.switch_view('create_course')

    if portal.create_course(request.POST):
        log.info(f"Course {request.POST.get('shortname')!r} created by {portal.session.username}")
        return render_to_response('moodle_portal:templates/courses.jinja2',
                                  page_context(request), request=request)

    request.response.status = 400
    return page_context(request, values=request.POST)
