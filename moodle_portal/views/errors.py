from pyramid.view import exception_view_config, notfound_view_config
from pyramid.httpexceptions import HTTPError

from ..exceptions import ErrorHandler


@notfound_view_config(renderer='moodle_portal:templates/error.jinja2')
def not_found(request):
    request.response.status = 404
    return {
        'error': True,
        'error_code': 'HTTP_404',
        'message': 'Page not found',
        'details': {},
    }


@exception_view_config(HTTPError, renderer='moodle_portal:templates/error.jinja2')
@exception_view_config(Exception, renderer='moodle_portal:templates/error.jinja2')
def error_view(request):
    """Global error page for anything a view did not handle"""
    return ErrorHandler.create_error_response(request, request.exception)
