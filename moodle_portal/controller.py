"""
Portal controller

Turns portal actions (sign in, switch view, create, open Moodle) into
MoodleService calls and keeps the state the pages render from.
"""

import logging
from urllib.parse import quote

from marshmallow import ValidationError as SchemaValidationError

from .exceptions import AuthenticationError, HandoffError, ValidationError
from .models.moodle import CreateCourseSchema, CreateUserSchema
from .models.session import UserSession
from .preload import CoursePreloader
from .services.moodle_service import MoodleError

log = logging.getLogger(__name__)

VIEWS = ('courses', 'my_courses', 'users', 'create_course', 'create_user')

CAPABILITY_MESSAGE = ("Access Denied: Your Moodle API Token is missing the '{capability}' "
                      "capability. Please contact your Moodle Administrator to enable this permission.")


class PortalState:
    def __init__(self):
        self.current_view = 'courses'
        self.courses = []
        self.user_courses = []
        self.users = []
        self.is_loading = False
        self.error = None
        self.notification = None


class Handoff:
    """Where the browser goes to land inside Moodle"""

    REDIRECT = 'redirect'
    FORM = 'form'
    MANUAL = 'manual'

    def __init__(self, kind, url, fields=None, delay=0, target='_self'):
        self.kind = kind
        self.url = url
        self.fields = fields or {}
        self.delay = delay
        self.target = target

    def __repr__(self):
        return f"<Handoff {self.kind} {self.url}>"


def _form_errors(messages):
    parts = []
    for field, errors in sorted(messages.items()):
        if isinstance(errors, (list, tuple)):
            errors = ' '.join(str(e) for e in errors)
        parts.append(f"{field}: {errors}")
    return "Please correct the form. " + '; '.join(parts)


class PortalController:

    MANUAL_REDIRECT_DELAY = 5

    def __init__(self, moodle, store, preloader=None):
        self.moodle = moodle
        self.store = store
        self.preloader = preloader or CoursePreloader()
        self.state = PortalState()
        self.session = None
        self.preload_thread = None

    def start(self):
        """Restore the signed-in user, if this client has one"""
        self.session = self.store.load()
        return self.session

    @property
    def is_authenticated(self):
        return self.session is not None and self.session.is_authenticated

    # Sign in / out

    def login(self, username, password):
        """
        Sign a Moodle user into the portal

        Only checks that the user exists, may log in and that a password was
        typed; the password itself is not verified against Moodle.
        """
        self.state.is_loading = True
        self.state.error = None
        try:
            if not password:
                raise AuthenticationError("Password is required.")

            clean_username = (username or '').strip()
            if not clean_username:
                raise AuthenticationError("Username is required.")

            user = self.moodle.find_user_by_field('username', clean_username)
            if user is None:
                raise AuthenticationError("User not found in Moodle. Please check your username.")
            if not user.can_login:
                raise AuthenticationError("This account is suspended or disabled in Moodle.")

            session = UserSession.from_user(user, password)
            self.store.save(session)
            self.session = session
        except (AuthenticationError, MoodleError) as e:
            log.warning(f"Login failed for {username!r}: {str(e)}")
            self.state.error = str(e)
            return False
        finally:
            self.state.is_loading = False

        log.info(f"User {self.session.username} signed in")
        self.preload_thread = self.preloader.start(self.session.id, self.moodle.fetch_user_courses)
        return True

    def logout(self):
        if self.session is not None:
            self.preloader.discard(self.session.id)
        self.store.clear()
        self.session = None
        self.state.courses = []
        self.state.user_courses = []
        self.state.users = []
        self.state.error = None
        self.state.notification = None

    # Views

    def switch_view(self, view):
        if view not in VIEWS:
            raise ValidationError(f"Unknown view: {view}")
        self.state.error = None
        self.state.current_view = view

        if not self.is_authenticated:
            return
        if view == 'courses':
            self.load_courses()
        elif view == 'my_courses':
            self.load_user_courses()
        elif view == 'users':
            self.load_users()

    def load_courses(self):
        self.state.is_loading = True
        self.state.error = None
        try:
            courses = self.moodle.fetch_courses()
            self.state.courses = [c for c in courses if not c.is_site]
        except MoodleError as e:
            log.error(f"Failed to load courses: {str(e)}")
            self.state.error = f"Failed to load available courses: {str(e)}"
            self.state.courses = []
        finally:
            self.state.is_loading = False

    def load_user_courses(self):
        if self.session is None:
            return
        self.state.error = None
        preloaded = self.preloader.take(self.session.id)
        if preloaded is not None:
            self.state.user_courses = preloaded
            return
        self.state.is_loading = True
        try:
            self.state.user_courses = self.moodle.fetch_user_courses(self.session.id)
        except MoodleError as e:
            log.error(f"Failed to load enrolled courses: {str(e)}")
            self.state.error = f"Failed to load your enrolled courses: {str(e)}"
            self.state.user_courses = []
        finally:
            self.state.is_loading = False

    def load_users(self):
        self.state.is_loading = True
        self.state.error = None
        try:
            self.state.users = self.moodle.list_users()
        except MoodleError as e:
            log.error(f"Failed to load users: {str(e)}")
            self.state.error = f"Failed to load users: {str(e)}"
            self.state.users = []
        finally:
            self.state.is_loading = False

    # Single sign-on

    def moodle_target_url(self, course_id=None):
        if course_id:
            return f"{self.moodle.site_url}/course/view.php?id={course_id}"
        return f"{self.moodle.site_url}/my/"

    def begin_sso(self, course_id=None):
        """
        Work out how to put the browser inside Moodle, signed in

        Prefers a one-time login URL; falls back to posting the Moodle login
        form with the stored credentials, and finally to sending the user to
        the login page after a short delay.
        """
        if not self.is_authenticated:
            raise AuthenticationError("Sign in to open Moodle.")

        self.state.error = None
        target_url = self.moodle_target_url(course_id)
        log.info(f"[SSO] Initiating. Target: {target_url}")
        self.state.notification = "Initiating Moodle Login..."

        try:
            login_url = self.moodle.request_sso_login_url(
                self.session.id, self.session.username, self.session.email)
        except MoodleError as e:
            log.warning(f"[SSO] API failed ({str(e)}). Attempting direct login fallback")
            self.state.notification = f"SSO API Warning: {str(e)}. Attempting automatic direct login..."
            try:
                return self.build_direct_login_form(target_url)
            except HandoffError as form_error:
                log.error(f"Direct login form generation failed: {str(form_error)}")
                self.state.error = "Automatic login failed completely. Redirecting you to Moodle login page..."
                return Handoff(Handoff.MANUAL, f"{self.moodle.site_url}/login/index.php",
                               delay=self.MANUAL_REDIRECT_DELAY)

        separator = '&' if '?' in login_url else '?'
        return Handoff(Handoff.REDIRECT, f"{login_url}{separator}wantsurl={quote(target_url, safe='')}")

    def build_direct_login_form(self, target_url):
        # wantsurl rides on the action URL so it survives Moodle dropping the POST body
        if self.session is None or not self.session.password:
            raise HandoffError("No stored credentials for direct login")

        action = f"{self.moodle.site_url}/login/index.php?wantsurl={quote(target_url, safe='')}"
        log.info(f"[Direct Login] Submitting form to {action} for user {self.session.username}")
        return Handoff(Handoff.FORM, action, fields={
            'username': self.session.username,
            'password': self.session.password,
        })

    # Creation forms

    def create_course(self, form):
        self.state.is_loading = True
        self.state.error = None
        try:
            payload = CreateCourseSchema().load(dict(form))
            self.moodle.create_course(payload)
        except SchemaValidationError as e:
            self.state.error = _form_errors(e.messages)
            return False
        except MoodleError as e:
            log.error(f"Course creation failed: {str(e)}")
            self.state.error = self._creation_error(e, 'moodle/course:create')
            return False
        finally:
            self.state.is_loading = False

        self.state.notification = "Course created successfully!"
        self.switch_view('courses')
        return True

    def create_user(self, form):
        self.state.is_loading = True
        self.state.error = None
        try:
            payload = CreateUserSchema().load(dict(form))
            self.moodle.create_user(payload)
        except SchemaValidationError as e:
            self.state.error = _form_errors(e.messages)
            return False
        except MoodleError as e:
            log.error(f"User creation failed: {str(e)}")
            self.state.error = self._creation_error(e, 'moodle/user:create')
            return False
        finally:
            self.state.is_loading = False

        self.state.notification = "User created successfully!"
        self.switch_view('users')
        return True

    @staticmethod
    def _creation_error(error, capability):
        if 'nopermissions' in str(error):
            return CAPABILITY_MESSAGE.format(capability=capability)
        return str(error)
