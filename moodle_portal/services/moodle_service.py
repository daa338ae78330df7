"""
Moodle REST API Service

Typed access to the Moodle web services the portal relies on. Each public
method is one logical operation; where Moodle installations differ in which
functions they expose, the operation tries an ordered list of strategies and
normalizes whichever response shape comes back.
"""

import requests
import time
import logging
import os
from typing import Dict, Any, List, Optional
from functools import wraps
import uuid

from marshmallow import ValidationError as SchemaValidationError

from ..exceptions import ConfigurationError
from ..models.moodle import MoodleUser, load_courses, load_users
from .fallback import FallbackChain, FallbackExhaustedError, Strategy

log = logging.getLogger(__name__)

WEBSERVICE_PATH = '/webservice/rest/server.php'
SSO_FUNCTION = 'auth_userkey_request_login_url'


class MoodleError(Exception):
    """Base exception for Moodle API errors"""
    def __init__(self, message: str, error_code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class MoodleAuthError(MoodleError):
    """Authentication/authorization errors"""
    pass


class MoodleValidationError(MoodleError):
    """Validation/parameter errors"""
    pass


class MoodleNotFoundError(MoodleError):
    """Resource not found errors"""
    pass


AUTH_ERRORS = ['invalidtoken', 'accessexception', 'nopermissions', 'notloggedin', 'requireloginerror']
VALIDATION_ERRORS = ['invalidparameter', 'missingparam', 'invalidrecord']
NOT_FOUND_ERRORS = ['invaliduser', 'invalidcourse', 'coursenotexist', 'invalidrecordunknown']


def is_permission_denied(error: Exception) -> bool:
    """True when error means the web-service token lacks a capability"""
    if isinstance(error, MoodleAuthError) and error.status_code == 403:
        return True
    message = str(error)
    return 'nopermissions' in message or 'access' in message


def log_moodle_request(func):
    """Decorator to log Moodle API requests with a short request id"""
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        wsfunction = args[0] if args else kwargs.get('wsfunction', 'unknown')
        method = kwargs.get('method', 'POST')

        if self.debug_mode:
            log.info(f"[{request_id}] Moodle API request started", extra={
                'request_id': request_id,
                'wsfunction': wsfunction,
                'method': method,
                'moodle_endpoint': self.endpoint
            })

        try:
            result = func(self, *args, **kwargs)
        except Exception as e:
            duration = (time.time() - start_time) * 1000
            log.error(f"[{request_id}] Moodle API request {wsfunction} failed: {str(e)}", extra={
                'request_id': request_id,
                'wsfunction': wsfunction,
                'duration_ms': round(duration, 2),
                'status': 'error'
            })
            raise

        if self.debug_mode:
            duration = (time.time() - start_time) * 1000
            log.info(f"[{request_id}] Moodle API request completed", extra={
                'request_id': request_id,
                'wsfunction': wsfunction,
                'duration_ms': round(duration, 2),
                'status': 'success'
            })
        return result

    return wrapper


class MoodleParamEncoder:
    """Utility class for encoding parameters in Moodle's bracketed key format"""

    @staticmethod
    def encode_params(data: Dict[str, Any]) -> Dict[str, str]:
        """
        Convert nested dictionaries and lists into Moodle's bracketed key format

        Examples:
        {'user': {'username': 'jane'}, 'values': ['a', 'b']}
        becomes:
        {'user[username]': 'jane', 'values[0]': 'a', 'values[1]': 'b'}

        None values are left out entirely.
        """
        result = {}

        def _encode_recursive(obj, prefix=''):
            if isinstance(obj, dict):
                for key, value in obj.items():
                    new_key = f"{prefix}[{key}]" if prefix else key
                    _encode_recursive(value, new_key)
            elif isinstance(obj, (list, tuple)):
                for i, item in enumerate(obj):
                    _encode_recursive(item, f"{prefix}[{i}]")
            elif obj is None:
                return
            elif isinstance(obj, bool):
                result[prefix] = '1' if obj else '0'
            else:
                result[prefix] = str(obj)

        _encode_recursive(data)
        return result


def _course_list(data: Any) -> Optional[List[Dict[str, Any]]]:
    """Accept a bare list or a {'courses': [...]} wrapper; anything else is unusable"""
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get('courses'), list):
        return data['courses']
    return None


class MoodleService:
    """
    Moodle REST API Service

    - One method per portal operation, with ordered fallbacks where Moodle
      deployments differ
    - Application-level exceptions in a 200 response are raised, never returned
    - Parameter encoding for Moodle's bracket syntax
    - Token is never logged
    """

    def __init__(self, site_url: str = None, token: str = None, timeout: int = None,
                 default_category: int = 1, signup_city: str = 'Dubai',
                 signup_country: str = 'AE', debug: bool = None):
        """
        Args:
            site_url: Moodle site URL (defaults to MOODLE_URL env var)
            token: Moodle web service token (defaults to MOODLE_TOKEN env var)
            timeout: Request timeout in milliseconds (defaults to MOODLE_TIMEOUT_MS env var)
            default_category: Category for new courses that do not name one
            signup_city: City sent with the self-signup fallback
            signup_country: Country code sent with the self-signup fallback
        """
        site_url = site_url or os.getenv('MOODLE_URL')
        self.token = token or os.getenv('MOODLE_TOKEN')
        try:
            self.timeout = timeout or int(os.getenv('MOODLE_TIMEOUT_MS', '15000'))
        except ValueError:
            self.timeout = 15000
        if debug is None:
            debug = os.getenv('MOODLE_DEBUG', 'false').lower() == 'true'
        self.debug_mode = debug

        if not site_url:
            raise ConfigurationError("Moodle URL is required (set MOODLE_URL env var)", 'moodle.url')
        if not self.token:
            raise ConfigurationError("Moodle token is required (set MOODLE_TOKEN env var)", 'moodle.token')

        site_url = site_url.rstrip('/')
        if site_url.endswith(WEBSERVICE_PATH):
            site_url = site_url[:-len(WEBSERVICE_PATH)]
        self.site_url = site_url
        self.endpoint = site_url + WEBSERVICE_PATH

        self.timeout_seconds = self.timeout / 1000.0
        self.default_category = default_category
        self.signup_city = signup_city
        self.signup_country = signup_country

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'MoodleService':
        """Build a service from Pyramid settings, environment variables winning"""
        debug = settings.get('moodle.debug')
        return cls(
            site_url=os.getenv('MOODLE_URL') or settings.get('moodle.url'),
            token=os.getenv('MOODLE_TOKEN') or settings.get('moodle.token'),
            timeout=int(os.getenv('MOODLE_TIMEOUT_MS') or settings.get('moodle.timeout_ms', 15000)),
            default_category=int(settings.get('moodle.default_category', 1)),
            signup_city=settings.get('moodle.signup_city', 'Dubai'),
            signup_country=settings.get('moodle.signup_country', 'AE'),
            debug=None if debug is None else str(debug).lower() == 'true',
        )

    def _normalize_error(self, response_data: Dict[str, Any]) -> MoodleError:
        """
        Turn an exception payload from a successful HTTP response into an error

        The message always carries both Moodle's human message and its error code.
        """
        error_code = response_data.get('errorcode') or 'unknown'
        message = response_data.get('message') or error_code
        text = f"Moodle API Exception: {message} ({error_code})"

        if error_code in AUTH_ERRORS:
            status = 401 if error_code == 'invalidtoken' else 403
            return MoodleAuthError(text, error_code, status)
        elif error_code in VALIDATION_ERRORS:
            return MoodleValidationError(text, error_code, 400)
        elif error_code in NOT_FOUND_ERRORS:
            return MoodleNotFoundError(text, error_code, 404)
        return MoodleError(text, error_code, 500)

    @log_moodle_request
    def call(self, wsfunction: str, params: Dict[str, Any] = None, method: str = 'POST') -> Any:
        """
        Call a Moodle web service function once

        Args:
            wsfunction: Moodle web service function name
            params: Parameters for the function
            method: 'POST' sends form-encoded parameters in the body, 'GET'
                sends them in the query string

        Returns:
            Decoded JSON response

        Raises:
            MoodleError: Transport failure or an exception payload from Moodle
        """
        request_data = {
            'wstoken': self.token,
            'wsfunction': wsfunction,
            'moodlewsrestformat': 'json'
        }
        if params:
            request_data.update(MoodleParamEncoder.encode_params(params))

        headers = {'User-Agent': 'Moodle-Marketing-Portal/1.0'}

        try:
            if method == 'GET':
                response = requests.get(
                    self.endpoint,
                    params=request_data,
                    timeout=self.timeout_seconds,
                    headers=headers
                )
            else:
                headers['Content-Type'] = 'application/x-www-form-urlencoded'
                response = requests.post(
                    self.endpoint,
                    data=request_data,
                    timeout=self.timeout_seconds,
                    headers=headers
                )
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise MoodleError(f"Request timeout after {self.timeout_seconds}s", status_code=504)
        except requests.exceptions.ConnectionError:
            raise MoodleError("Connection error to Moodle server", status_code=503)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise MoodleError(f"HTTP Error: {status}", status_code=status)
        except requests.exceptions.RequestException as e:
            raise MoodleError(f"Request error: {str(e)}", status_code=502)

        try:
            data = response.json()
        except ValueError:
            raise MoodleError("Invalid JSON response from Moodle", status_code=502)

        if isinstance(data, dict) and (data.get('exception') or data.get('errorcode')):
            raise self._normalize_error(data)

        return data

    # Typed operations

    def get_site_info(self) -> Dict[str, Any]:
        return self.call('core_webservice_get_site_info')

    def fetch_courses(self) -> List[Any]:
        """
        List every course the token can see

        Tries a broad search, then the system listing, then the default
        category listing. The first strategy returning a course list (even an
        empty one) wins.

        Raises:
            MoodleError: Every strategy failed; the message lists each failure
        """
        def listing(wsfunction, params):
            def run():
                courses = _course_list(self.call(wsfunction, params))
                return load_courses(courses) if courses is not None else None
            return run

        chain = FallbackChain([
            Strategy('search_courses', listing('core_course_search_courses', {
                'criterianame': 'search',
                'criteriavalue': ' '
            })),
            Strategy('get_courses', listing('core_course_get_courses', {
                'options': {'ids': []}
            })),
            Strategy('get_courses_by_field', listing('core_course_get_courses_by_field', {
                'field': 'category',
                'value': self.default_category
            })),
        ])

        try:
            courses = chain.run()
        except FallbackExhaustedError as e:
            raise MoodleError(f"Unable to fetch courses. Details: {e.summary(' | ')}")
        return courses if courses is not None else []

    def fetch_user_courses(self, user_id: int) -> List[Any]:
        """Courses user_id is enrolled in"""
        try:
            result = self.call('core_enrol_get_users_courses', {'userid': user_id})
            return load_courses(result) if isinstance(result, list) else []
        except (MoodleError, SchemaValidationError) as e:
            log.warning(f"Failed to fetch courses for user {user_id}: {str(e)}")
            raise MoodleError(f"Failed to fetch user courses: {str(e)}",
                              getattr(e, 'error_code', None), getattr(e, 'status_code', None))

    def list_users(self) -> List[MoodleUser]:
        response = self.call('core_user_get_users', {
            'criteria': [{'key': 'email', 'value': '%'}]
        })
        if not (isinstance(response, dict) and isinstance(response.get('users'), list)):
            return []
        try:
            return load_users(response['users'])
        except SchemaValidationError as e:
            # Tokens without moodle/user:viewalldetails get records without a username
            log.warning(f"Unreadable user records from core_user_get_users: {e.messages}")
            raise MoodleError(f"Failed to read user records: {e.messages}")

    def find_user_by_field(self, field: str, value: str) -> Optional[MoodleUser]:
        """
        Find one user by username or email

        Moodle stores usernames in lowercase, so username values are
        lowercased before the lookup. Emails are sent as given.

        Returns:
            The first matching user, or None when no lookup found one

        Raises:
            MoodleAuthError: The token may not look users up
        """
        if field not in ('username', 'email'):
            raise MoodleValidationError(f"Cannot look users up by {field}")

        search_value = value.strip().lower() if field == 'username' else value

        def by_criteria():
            response = self.call('core_user_get_users', {
                'criteria': [{'key': field, 'value': search_value}]
            })
            if isinstance(response, dict) and response.get('users'):
                return load_users(response['users'])[0]
            return None

        def by_field():
            response = self.call('core_user_get_users_by_field', {
                'field': field,
                'values': [search_value]
            })
            if isinstance(response, list) and response:
                return load_users(response)[0]
            return None

        chain = FallbackChain([
            Strategy('get_users', by_criteria),
            Strategy('get_users_by_field', by_field),
        ], propagate=(MoodleAuthError,))

        try:
            return chain.run()
        except MoodleAuthError as e:
            raise MoodleAuthError(f"Access Denied: {str(e)}", e.error_code, e.status_code)
        except FallbackExhaustedError as e:
            log.warning(f"User lookup by {field} failed: {e.summary()}")
            return None

    def create_course(self, course_data: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Create one course

        Returns:
            Moodle's list of created records ({'id', 'shortname'})
        """
        course = dict(course_data)
        if not course.get('categoryid'):
            course['categoryid'] = self.default_category

        for field in ('fullname', 'shortname'):
            if not course.get(field):
                raise MoodleValidationError(f"Required field missing: {field}")

        return self.call('core_course_create_courses', {'courses': [course]})

    def create_user(self, user_data: Dict[str, Any]) -> List[MoodleUser]:
        """
        Create one user, falling back to public self-signup

        When the token lacks the capability to create users, the account is
        requested through auth_email_signup_user instead. Signup does not
        return the new record, so a placeholder (id 0, suspended) stands in
        for it until the account is confirmed.

        Raises:
            MoodleError: The admin create failed and signup did not succeed;
                always the admin create error
        """
        try:
            result = self.call('core_user_create_users', {'users': [user_data]})
        except MoodleError as admin_error:
            if not is_permission_denied(admin_error):
                raise
            log.warning("Admin user creation denied, attempting auth_email_signup_user fallback")
            placeholder = self._signup_user(user_data)
            if placeholder is None:
                raise admin_error
            return [placeholder]

        if not isinstance(result, list):
            return []
        return [MoodleUser(id=r.get('id'), username=r.get('username', user_data.get('username')),
                           firstname=user_data.get('firstname', ''),
                           lastname=user_data.get('lastname', ''),
                           email=user_data.get('email', ''),
                           auth=user_data.get('auth'))
                for r in result if isinstance(r, dict)]

    def _signup_user(self, user_data: Dict[str, Any]) -> Optional[MoodleUser]:
        try:
            result = self.call('auth_email_signup_user', {
                'username': user_data.get('username'),
                'password': user_data.get('password'),
                'firstname': user_data.get('firstname'),
                'lastname': user_data.get('lastname'),
                'email': user_data.get('email'),
                'city': self.signup_city,
                'country': self.signup_country
            })
        except MoodleError as e:
            log.error(f"Signup fallback also failed: {str(e)}")
            return None

        if isinstance(result, dict) and result.get('success') in (True, 'true'):
            return MoodleUser(
                id=0,
                username=user_data.get('username'),
                firstname=user_data.get('firstname', ''),
                lastname=user_data.get('lastname', ''),
                email=user_data.get('email', ''),
                auth='manual',
                suspended=True
            )

        log.error(f"Signup fallback was not successful: {result!r}")
        return None

    def request_sso_login_url(self, user_id: int, username: str, email: str = None) -> str:
        """
        Request a one-time login URL from the auth_userkey plugin

        Some deployments reject array parameters in a POST body, and some
        match usernames case-sensitively, so the request is tried as
        lowercase/POST, lowercase/GET and finally original-case/POST.

        Raises:
            MoodleError: No attempt returned a login URL; the message names
                every failed attempt
        """
        def login_url(name, method):
            def run():
                data = self.call(SSO_FUNCTION, {'user': {'username': name}}, method=method)
                if isinstance(data, dict) and data.get('loginurl'):
                    return data['loginurl']
                return None
            return run

        strategies = []
        if username:
            raw_username = username.strip()
            safe_username = raw_username.lower()
            strategies.append(Strategy('Username(lc/POST)', login_url(safe_username, 'POST')))
            strategies.append(Strategy('Username(lc/GET)', login_url(safe_username, 'GET')))
            if raw_username != safe_username:
                strategies.append(Strategy('Username(raw/POST)', login_url(raw_username, 'POST')))

        log.info(f"Requesting SSO login URL for user {user_id} with {len(strategies)} strategies")

        try:
            url = FallbackChain(strategies).run()
        except FallbackExhaustedError as e:
            raise MoodleError(f"SSO Unavailable. Attempts failed: {e.summary(', ')}")
        if url is None:
            raise MoodleError("SSO Unavailable. Attempts failed: no login URL returned")
        return url
