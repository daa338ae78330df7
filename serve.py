from waitress import serve
from pyramid.paster import get_app, setup_logging
from dotenv import load_dotenv
import logging
import os
import sys

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

log = logging.getLogger('moodle_portal.serve')


def create_app():
    config_file = os.getenv('PORTAL_CONFIG', os.path.join(BASE_DIR, 'development.ini'))
    if not os.path.exists(config_file):
        raise SystemExit(f"Config file not found: {config_file}")
    setup_logging(config_file)
    return get_app(config_file, 'main')


if __name__ == '__main__':
    port = int(os.getenv('PORT', 6543))
    host = os.getenv('HOST', '0.0.0.0')

    app = create_app()
    log.info(f"Starting portal on http://{host}:{port}")

    try:
        serve(app, host=host, port=port, threads=6)
    except KeyboardInterrupt:
        log.info("Server stopped")
    except OSError as e:
        log.error(f"Server error: {e}")
        sys.exit(1)
