from pyramid.view import view_config
from pyramid.httpexceptions import HTTPFound
import logging

from . import page_context

log = logging.getLogger(__name__)


@view_config(route_name='home', request_method='GET')
def home(request):
    if request.portal.is_authenticated:
        return HTTPFound(location=request.route_url('courses'))
    return HTTPFound(location=request.route_url('login'))


@view_config(route_name='login', request_method='GET',
             renderer='moodle_portal:templates/login.jinja2')
def login_form(request):
    if request.portal.is_authenticated:
        return HTTPFound(location=request.route_url('courses'))
    return page_context(request, username='')


@view_config(route_name='login', request_method='POST',
             renderer='moodle_portal:templates/login.jinja2')
def login(request):
    """Sign in with a Moodle username; the password is kept for SSO fallback"""
    portal = request.portal
    username = request.POST.get('username', '')
    password = request.POST.get('password', '')

    if portal.login(username, password):
        return HTTPFound(location=request.route_url('courses'))

    request.response.status = 401
    return page_context(request, username=username)


@view_config(route_name='logout', request_method='POST')
def logout(request):
    request.portal.logout()
    return HTTPFound(location=request.route_url('login'))
