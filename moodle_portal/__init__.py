import logging
import os

from dotenv import load_dotenv
from pyramid.config import Configurator
from sqlalchemy import engine_from_config

from .auth import get_client_id
from .controller import PortalController
from .middleware.logging_middleware import LoggingMiddleware
from .models import DBSession, initialize_sql
from .preload import CoursePreloader
from .services.moodle_service import MoodleService
from .session_store import SessionStore

log = logging.getLogger(__name__)

# Load environment variables
load_dotenv()


def get_portal(request):
    """Controller for this request, with the client's stored session restored"""
    request.add_finished_callback(lambda r: DBSession.remove())
    client_id = get_client_id(request)
    portal = PortalController(request.registry.moodle, SessionStore(client_id),
                              request.registry.preloader)
    portal.start()
    return portal


def main(global_config, **settings):
    """This function returns a Pyramid WSGI application."""
    if os.getenv('DATABASE_URL'):
        settings['sqlalchemy.url'] = os.getenv('DATABASE_URL')
    settings.setdefault('sqlalchemy.url', 'sqlite:///portal.sqlite')

    config = Configurator(settings=settings)
    config.include('pyramid_jinja2')

    # Database setup
    engine = engine_from_config(settings, 'sqlalchemy.')
    initialize_sql(engine)

    config.registry.moodle = MoodleService.from_settings(settings)
    log.info(f"Portal configured for Moodle at {config.registry.moodle.site_url}")
    config.registry.preloader = CoursePreloader(
        float(settings.get('portal.preload_wait_seconds', 10)))

    config.add_request_method(get_portal, 'portal', reify=True)

    config.add_route('home', '/')
    config.add_route('health', '/health')
    config.add_route('login', '/login')
    config.add_route('logout', '/logout')

    config.add_route('create_course', '/courses/new')
    config.add_route('courses', '/courses')
    config.add_route('my_courses', '/my-courses')
    config.add_route('create_user', '/users/new')
    config.add_route('users', '/users')

    config.add_route('sso_dashboard', '/sso')
    config.add_route('sso_course', '/sso/{course_id}')

    config.add_static_view('static', 'moodle_portal:static', cache_max_age=3600)

    config.scan('.views')

    app = config.make_wsgi_app()
    return LoggingMiddleware(app, settings)
