from pyramid.view import view_config
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..models import DBSession
from ..services.moodle_service import MoodleError


@view_config(route_name='health', request_method='GET', renderer='json')
def health_check(request):
    """Health check covering the session store and the Moodle web service"""
    try:
        DBSession.execute(text("SELECT 1")).fetchone()
        store_status = "connected"
        store_message = "Session store reachable"
    except SQLAlchemyError as e:
        store_status = "disconnected"
        store_message = f"Session store unreachable: {str(e)}"
    finally:
        DBSession.remove()

    moodle = request.registry.moodle
    try:
        site = moodle.get_site_info()
        moodle_status = "connected"
        moodle_message = f"{site.get('sitename', '')} (release {site.get('release', 'unknown')})"
    except MoodleError as e:
        moodle_status = "unreachable"
        moodle_message = str(e)

    healthy = store_status == "connected" and moodle_status == "connected"
    return {
        'status': 'healthy' if healthy else 'unhealthy',
        'service': 'Moodle Marketing Portal',
        'version': '1.0.0',
        'session_store': {
            'status': store_status,
            'message': store_message
        },
        'moodle': {
            'status': moodle_status,
            'message': moodle_message,
            'site_url': moodle.site_url,
            'endpoint': moodle.endpoint
        }
    }
