"""
Unit tests for MoodleService

Tests for the Moodle REST API service with mocked HTTP calls to ensure
proper parameter encoding, error normalization and fallback ordering.
"""

import pytest
import requests
from unittest.mock import patch, Mock, call
import os

from moodle_portal.exceptions import ConfigurationError
from moodle_portal.models.moodle import MoodleCourse, MoodleUser
from moodle_portal.services.moodle_service import (
    MoodleService, MoodleError, MoodleAuthError,
    MoodleValidationError, MoodleNotFoundError, MoodleParamEncoder,
    is_permission_denied, SSO_FUNCTION
)

ENDPOINT = 'https://moodle.test.com/webservice/rest/server.php'


def json_response(payload):
    response = Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


class TestMoodleParamEncoder:
    """Test the parameter encoding utility for Moodle's bracket syntax"""

    def test_simple_params(self):
        data = {'username': 'testuser', 'email': 'test@example.com'}
        assert MoodleParamEncoder.encode_params(data) == data

    def test_nested_dict(self):
        data = {'user': {'username': 'jane.doe'}}
        assert MoodleParamEncoder.encode_params(data) == {'user[username]': 'jane.doe'}

    def test_array_of_objects(self):
        data = {
            'criteria': [
                {'key': 'email', 'value': '%'},
                {'key': 'username', 'value': 'jane'}
            ]
        }
        assert MoodleParamEncoder.encode_params(data) == {
            'criteria[0][key]': 'email',
            'criteria[0][value]': '%',
            'criteria[1][key]': 'username',
            'criteria[1][value]': 'jane'
        }

    def test_array_of_scalars(self):
        data = {'field': 'username', 'values': ['jane', 'john']}
        assert MoodleParamEncoder.encode_params(data) == {
            'field': 'username',
            'values[0]': 'jane',
            'values[1]': 'john'
        }

    def test_none_values_are_skipped_and_booleans_become_digits(self):
        data = {'name': 'Test', 'description': None, 'active': True, 'hidden': False, 'id': 4}
        assert MoodleParamEncoder.encode_params(data) == {
            'name': 'Test',
            'active': '1',
            'hidden': '0',
            'id': '4'
        }

    def test_empty_list_encodes_to_nothing(self):
        assert MoodleParamEncoder.encode_params({'options': {'ids': []}}) == {}


class TestMoodleService:
    """Test configuration and the single-call transport"""

    @pytest.fixture
    def mock_env(self):
        with patch.dict(os.environ, {
            'MOODLE_URL': 'https://moodle.test.com',
            'MOODLE_TOKEN': 'test_token_123',
            'MOODLE_TIMEOUT_MS': '15000',
            'MOODLE_DEBUG': 'false'
        }):
            yield

    @pytest.fixture
    def moodle_service(self, mock_env):
        return MoodleService()

    def test_initialization(self, mock_env):
        service = MoodleService()

        assert service.site_url == 'https://moodle.test.com'
        assert service.endpoint == ENDPOINT
        assert service.token == 'test_token_123'
        assert service.timeout_seconds == 15.0
        assert service.debug_mode is False
        assert service.default_category == 1

    def test_initialization_missing_config(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError, match="Moodle URL is required"):
                MoodleService()

    def test_initialization_missing_token(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError, match="Moodle token is required"):
                MoodleService(site_url='https://moodle.test.com')

    def test_site_url_normalization(self):
        service = MoodleService(site_url='https://moodle.test.com/', token='t')
        assert service.site_url == 'https://moodle.test.com'

        service2 = MoodleService(site_url=ENDPOINT, token='t')
        assert service2.site_url == 'https://moodle.test.com'
        assert service2.endpoint == ENDPOINT

    def test_from_settings(self):
        with patch.dict(os.environ, {}, clear=True):
            service = MoodleService.from_settings({
                'moodle.url': 'https://lms.example.org',
                'moodle.token': 'abc',
                'moodle.timeout_ms': '5000',
                'moodle.default_category': '3',
                'moodle.signup_city': 'Paris',
                'moodle.signup_country': 'FR',
            })

        assert service.site_url == 'https://lms.example.org'
        assert service.timeout_seconds == 5.0
        assert service.default_category == 3
        assert service.signup_country == 'FR'

    @patch('requests.post')
    def test_successful_post_call(self, mock_post, moodle_service):
        mock_post.return_value = json_response({'sitename': 'Test Site'})

        result = moodle_service.call('core_webservice_get_site_info')

        mock_post.assert_called_once()
        call_args = mock_post.call_args
        assert call_args[0][0] == ENDPOINT
        assert call_args[1]['data'] == {
            'wstoken': 'test_token_123',
            'wsfunction': 'core_webservice_get_site_info',
            'moodlewsrestformat': 'json'
        }
        assert call_args[1]['headers']['Content-Type'] == 'application/x-www-form-urlencoded'
        assert call_args[1]['timeout'] == 15.0
        assert result == {'sitename': 'Test Site'}

    @patch('requests.get')
    def test_get_call_sends_query_params(self, mock_get, moodle_service):
        mock_get.return_value = json_response({'loginurl': 'https://moodle.test.com/x'})

        moodle_service.call(SSO_FUNCTION, {'user': {'username': 'jane'}}, method='GET')

        params = mock_get.call_args[1]['params']
        assert params['wsfunction'] == SSO_FUNCTION
        assert params['user[username]'] == 'jane'

    @patch('requests.post')
    def test_http_error_is_generic(self, mock_post, moodle_service):
        response = Mock()
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=Mock(status_code=500))
        mock_post.return_value = response

        with pytest.raises(MoodleError) as exc_info:
            moodle_service.call('core_course_get_courses')

        assert str(exc_info.value) == 'HTTP Error: 500'
        assert exc_info.value.status_code == 500

    @patch('requests.post')
    def test_exception_payload_is_a_failure(self, mock_post, moodle_service):
        mock_post.return_value = json_response({
            'exception': 'invalid_parameter_exception',
            'errorcode': 'invalidparameter',
            'message': 'Invalid parameter value detected'
        })

        with pytest.raises(MoodleValidationError) as exc_info:
            moodle_service.call('core_course_create_courses', {})

        assert exc_info.value.error_code == 'invalidparameter'
        assert 'Invalid parameter value detected' in str(exc_info.value)
        assert '(invalidparameter)' in str(exc_info.value)

    @patch('requests.post')
    def test_errorcode_without_exception_is_a_failure(self, mock_post, moodle_service):
        mock_post.return_value = json_response({'errorcode': 'invaliduser', 'message': 'No such user'})

        with pytest.raises(MoodleNotFoundError) as exc_info:
            moodle_service.call('core_user_get_users_by_field')

        assert exc_info.value.status_code == 404

    @patch('requests.post')
    def test_permission_payload(self, mock_post, moodle_service):
        mock_post.return_value = json_response({
            'exception': 'required_capability_exception',
            'errorcode': 'nopermissions',
            'message': 'Sorry, but you do not currently have permissions to do that (Create users).'
        })

        with pytest.raises(MoodleAuthError) as exc_info:
            moodle_service.call('core_user_create_users')

        assert exc_info.value.status_code == 403
        assert is_permission_denied(exc_info.value)

    @patch('requests.post')
    def test_invalid_token(self, mock_post, moodle_service):
        mock_post.return_value = json_response({
            'exception': 'moodle_exception',
            'errorcode': 'invalidtoken',
            'message': 'Invalid token - token not found'
        })

        with pytest.raises(MoodleAuthError) as exc_info:
            moodle_service.call('core_webservice_get_site_info')

        assert exc_info.value.status_code == 401
        assert not is_permission_denied(exc_info.value)

    @patch('requests.post')
    def test_timeout_handling(self, mock_post, moodle_service):
        mock_post.side_effect = requests.exceptions.Timeout()

        with pytest.raises(MoodleError) as exc_info:
            moodle_service.call('core_webservice_get_site_info')

        assert 'timeout' in str(exc_info.value).lower()
        assert exc_info.value.status_code == 504
        assert mock_post.call_count == 1

    @patch('requests.post')
    def test_connection_error_handling(self, mock_post, moodle_service):
        mock_post.side_effect = requests.exceptions.ConnectionError()

        with pytest.raises(MoodleError) as exc_info:
            moodle_service.call('core_webservice_get_site_info')

        assert exc_info.value.status_code == 503

    @patch('requests.post')
    def test_invalid_json_response(self, mock_post, moodle_service):
        response = Mock()
        response.raise_for_status.return_value = None
        response.json.side_effect = ValueError("Invalid JSON")
        mock_post.return_value = response

        with pytest.raises(MoodleError, match='Invalid JSON response'):
            moodle_service.call('core_webservice_get_site_info')

class TestPermissionDenied:

    def test_forbidden_auth_error(self):
        assert is_permission_denied(MoodleAuthError('Moodle API Exception: x (requireloginerror)',
                                                    'requireloginerror', 403))

    def test_nopermissions_in_message(self):
        assert is_permission_denied(MoodleError('Moodle API Exception: Sorry (nopermissions)'))

    def test_access_exception_code(self):
        assert is_permission_denied(MoodleError('Moodle API Exception: Access control exception (accessexception)'))

    def test_capitalised_access_alone_is_not_a_denial(self):
        assert not is_permission_denied(MoodleError('Access to the database failed'))

    def test_invalid_token_is_not_a_denial(self):
        assert not is_permission_denied(MoodleAuthError('Moodle API Exception: Invalid token (invalidtoken)',
                                                        'invalidtoken', 401))



class TestMoodleOperations:
    """Test the typed operations and their fallback ordering"""

    @pytest.fixture
    def moodle_service(self):
        return MoodleService(site_url='https://moodle.test.com', token='test_token_123')

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_get_site_info(self, mock_call, moodle_service):
        mock_call.return_value = {'sitename': 'Test Site', 'release': '4.3'}

        assert moodle_service.get_site_info()['sitename'] == 'Test Site'
        mock_call.assert_called_once_with('core_webservice_get_site_info')

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_fetch_courses_first_strategy_wins(self, mock_call, moodle_service):
        mock_call.return_value = {'courses': [
            {'id': 2, 'shortname': 'MKT', 'fullname': 'Marketing 101', 'format': 'topics'}
        ], 'total': 1}

        courses = moodle_service.fetch_courses()

        mock_call.assert_called_once_with('core_course_search_courses', {
            'criterianame': 'search', 'criteriavalue': ' '
        })
        assert len(courses) == 1
        assert isinstance(courses[0], MoodleCourse)
        assert courses[0].fullname == 'Marketing 101'

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_fetch_courses_empty_success_is_not_an_error(self, mock_call, moodle_service):
        mock_call.side_effect = [MoodleError('search broke'), []]

        assert moodle_service.fetch_courses() == []
        assert mock_call.call_count == 2

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_fetch_courses_falls_back_in_order(self, mock_call, moodle_service):
        mock_call.side_effect = [
            MoodleError('search broke'),
            MoodleError('listing broke'),
            [{'id': 9, 'shortname': 'C9', 'fullname': 'Category course'}]
        ]

        courses = moodle_service.fetch_courses()

        assert [c.id for c in courses] == [9]
        assert [c[0][0] for c in mock_call.call_args_list] == [
            'core_course_search_courses',
            'core_course_get_courses',
            'core_course_get_courses_by_field'
        ]
        assert mock_call.call_args_list[2] == call('core_course_get_courses_by_field', {
            'field': 'category', 'value': 1
        })

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_fetch_courses_all_fail_aggregates_errors(self, mock_call, moodle_service):
        mock_call.side_effect = [MoodleError('boom one'), MoodleError('boom two'), MoodleError('boom three')]

        with pytest.raises(MoodleError) as exc_info:
            moodle_service.fetch_courses()

        message = str(exc_info.value)
        assert message.startswith('Unable to fetch courses.')
        assert 'search_courses: boom one' in message
        assert 'get_courses: boom two' in message
        assert 'get_courses_by_field: boom three' in message

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_fetch_courses_unusable_shapes_return_empty(self, mock_call, moodle_service):
        mock_call.side_effect = [{'warnings': []}, {'unexpected': True}, 'nonsense']

        assert moodle_service.fetch_courses() == []
        assert mock_call.call_count == 3

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_fetch_user_courses(self, mock_call, moodle_service):
        mock_call.return_value = [{'id': 4, 'shortname': 'S4', 'fullname': 'Sales'}]

        courses = moodle_service.fetch_user_courses(12)

        mock_call.assert_called_once_with('core_enrol_get_users_courses', {'userid': 12})
        assert courses[0].shortname == 'S4'

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_fetch_user_courses_adds_context_to_errors(self, mock_call, moodle_service):
        mock_call.side_effect = MoodleError('HTTP Error: 500', status_code=500)

        with pytest.raises(MoodleError, match='Failed to fetch user courses: HTTP Error: 500'):
            moodle_service.fetch_user_courses(12)

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_list_users(self, mock_call, moodle_service):
        mock_call.return_value = {'users': [
            {'id': 1, 'username': 'admin', 'firstname': 'Ada', 'lastname': 'Min'},
            {'id': 2, 'username': 'jane', 'email': 'jane@example.com', 'suspended': True}
        ], 'warnings': []}

        users = moodle_service.list_users()

        mock_call.assert_called_once_with('core_user_get_users', {
            'criteria': [{'key': 'email', 'value': '%'}]
        })
        assert [u.username for u in users] == ['admin', 'jane']
        assert users[0].fullname == 'Ada Min'
        assert users[1].suspended is True

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_list_users_without_usernames_is_an_error(self, mock_call, moodle_service):
        mock_call.return_value = {'users': [{'id': 3, 'fullname': 'Ann Other', 'email': 'a@x.org'}]}

        with pytest.raises(MoodleError, match='Failed to read user records'):
            moodle_service.list_users()

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_find_user_lowercases_username(self, mock_call, moodle_service):
        mock_call.return_value = {'users': [{'id': 5, 'username': 'jane.doe'}]}

        user = moodle_service.find_user_by_field('username', 'Jane.Doe')

        mock_call.assert_called_once_with('core_user_get_users', {
            'criteria': [{'key': 'username', 'value': 'jane.doe'}]
        })
        assert isinstance(user, MoodleUser)
        assert user.id == 5

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_find_user_keeps_email_case(self, mock_call, moodle_service):
        mock_call.return_value = {'users': [{'id': 6, 'username': 'jane', 'email': 'Jane@Example.com'}]}

        moodle_service.find_user_by_field('email', 'Jane@Example.com')

        mock_call.assert_called_once_with('core_user_get_users', {
            'criteria': [{'key': 'email', 'value': 'Jane@Example.com'}]
        })

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_find_user_falls_back_to_field_lookup(self, mock_call, moodle_service):
        mock_call.side_effect = [{'users': []}, [{'id': 7, 'username': 'jane.doe'}]]

        user = moodle_service.find_user_by_field('username', 'Jane.Doe')

        assert user.id == 7
        assert mock_call.call_args_list[1] == call('core_user_get_users_by_field', {
            'field': 'username', 'values': ['jane.doe']
        })

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_find_user_not_found(self, mock_call, moodle_service):
        mock_call.side_effect = [{'users': []}, []]

        assert moodle_service.find_user_by_field('username', 'ghost') is None

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_find_user_errors_read_as_not_found(self, mock_call, moodle_service):
        mock_call.side_effect = [MoodleError('HTTP Error: 502'), MoodleError('HTTP Error: 502')]

        assert moodle_service.find_user_by_field('username', 'jane') is None

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_find_user_permission_denied_propagates(self, mock_call, moodle_service):
        mock_call.side_effect = MoodleAuthError(
            'Moodle API Exception: Access control exception (accessexception)', 'accessexception', 403)

        with pytest.raises(MoodleAuthError, match='Access Denied'):
            moodle_service.find_user_by_field('username', 'jane')

        assert mock_call.call_count == 1

    def test_find_user_rejects_other_fields(self, moodle_service):
        with pytest.raises(MoodleValidationError):
            moodle_service.find_user_by_field('idnumber', '42')

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_create_course_defaults_category(self, mock_call, moodle_service):
        mock_call.return_value = [{'id': 123, 'shortname': 'NC'}]

        result = moodle_service.create_course({'fullname': 'New Course', 'shortname': 'NC'})

        mock_call.assert_called_once_with('core_course_create_courses', {
            'courses': [{'fullname': 'New Course', 'shortname': 'NC', 'categoryid': 1}]
        })
        assert result == [{'id': 123, 'shortname': 'NC'}]

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_create_course_propagates_errors(self, mock_call, moodle_service):
        error = MoodleError('Moodle API Exception: Short name is already used (shortnametaken)')
        mock_call.side_effect = error

        with pytest.raises(MoodleError) as exc_info:
            moodle_service.create_course({'fullname': 'Dup', 'shortname': 'DUP'})

        assert exc_info.value is error

    def test_create_course_validation(self, moodle_service):
        with pytest.raises(MoodleValidationError, match="Required field missing: shortname"):
            moodle_service.create_course({'fullname': 'Test Course'})


class TestCreateUserFallback:

    USER = {
        'username': 'newbie',
        'password': 'S3cret!pass',
        'firstname': 'New',
        'lastname': 'Bie',
        'email': 'newbie@example.com'
    }

    @pytest.fixture
    def moodle_service(self):
        return MoodleService(site_url='https://moodle.test.com', token='test_token_123')

    @pytest.fixture
    def denied(self):
        return MoodleAuthError(
            'Moodle API Exception: Sorry, but you do not currently have permissions (nopermissions)',
            'nopermissions', 403)

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_admin_create(self, mock_call, moodle_service):
        mock_call.return_value = [{'id': 31, 'username': 'newbie'}]

        users = moodle_service.create_user(self.USER)

        mock_call.assert_called_once_with('core_user_create_users', {'users': [self.USER]})
        assert users[0].id == 31
        assert users[0].fullname == 'New Bie'

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_signup_fallback_returns_placeholder(self, mock_call, moodle_service, denied):
        mock_call.side_effect = [denied, {'success': True, 'warnings': []}]

        users = moodle_service.create_user(self.USER)

        assert mock_call.call_count == 2
        wsfunction, params = mock_call.call_args_list[1][0]
        assert wsfunction == 'auth_email_signup_user'
        assert params['city'] == 'Dubai'
        assert params['country'] == 'AE'
        assert params['username'] == 'newbie'

        assert len(users) == 1
        assert users[0].id == 0
        assert users[0].suspended is True
        assert users[0].auth == 'manual'

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_signup_string_true_counts_as_success(self, mock_call, moodle_service, denied):
        mock_call.side_effect = [denied, {'success': 'true'}]

        assert moodle_service.create_user(self.USER)[0].id == 0

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_signup_failure_raises_original_error(self, mock_call, moodle_service, denied):
        mock_call.side_effect = [denied, MoodleError('Moodle API Exception: signup disabled (invalidaccess)')]

        with pytest.raises(MoodleAuthError) as exc_info:
            moodle_service.create_user(self.USER)

        assert exc_info.value is denied
        assert mock_call.call_count == 2

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_unsuccessful_signup_raises_original_error(self, mock_call, moodle_service, denied):
        mock_call.side_effect = [denied, {'success': False, 'warnings': [{'message': 'Email taken'}]}]

        with pytest.raises(MoodleAuthError) as exc_info:
            moodle_service.create_user(self.USER)

        assert exc_info.value is denied

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_other_errors_skip_signup(self, mock_call, moodle_service):
        mock_call.side_effect = MoodleValidationError('Moodle API Exception: bad email (invalidparameter)',
                                                      'invalidparameter', 400)

        with pytest.raises(MoodleValidationError):
            moodle_service.create_user(self.USER)

        assert mock_call.call_count == 1

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_capitalised_access_error_skips_signup(self, mock_call, moodle_service):
        mock_call.side_effect = MoodleError('Access to the database failed')

        with pytest.raises(MoodleError):
            moodle_service.create_user(self.USER)

        assert mock_call.call_count == 1


class TestSingleSignOn:

    LOGIN_URL = 'https://moodle.test.com/auth/userkey/login.php?key=abc123'

    @pytest.fixture
    def moodle_service(self):
        return MoodleService(site_url='https://moodle.test.com', token='test_token_123')

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_first_attempt_posts_lowercase_username(self, mock_call, moodle_service):
        mock_call.return_value = {'loginurl': self.LOGIN_URL}

        url = moodle_service.request_sso_login_url(5, 'Jane.Doe', 'jane@example.com')

        assert url == self.LOGIN_URL
        mock_call.assert_called_once_with(SSO_FUNCTION, {'user': {'username': 'jane.doe'}}, method='POST')

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_get_retry_after_post_failure(self, mock_call, moodle_service):
        mock_call.side_effect = [MoodleError('HTTP Error: 400'), {'loginurl': self.LOGIN_URL}]

        assert moodle_service.request_sso_login_url(5, 'Jane.Doe', 'jane@example.com') == self.LOGIN_URL
        assert mock_call.call_args_list[1] == call(
            SSO_FUNCTION, {'user': {'username': 'jane.doe'}}, method='GET')

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_all_three_attempts_in_order(self, mock_call, moodle_service):
        mock_call.side_effect = [
            MoodleError('post failed'),
            MoodleError('get failed'),
            MoodleError('raw failed')
        ]

        with pytest.raises(MoodleError) as exc_info:
            moodle_service.request_sso_login_url(5, 'Jane.Doe', 'jane@example.com')

        assert mock_call.call_args_list == [
            call(SSO_FUNCTION, {'user': {'username': 'jane.doe'}}, method='POST'),
            call(SSO_FUNCTION, {'user': {'username': 'jane.doe'}}, method='GET'),
            call(SSO_FUNCTION, {'user': {'username': 'Jane.Doe'}}, method='POST'),
        ]
        message = str(exc_info.value)
        assert message.startswith('SSO Unavailable.')
        assert 'Username(lc/POST): post failed' in message
        assert 'Username(lc/GET): get failed' in message
        assert 'Username(raw/POST): raw failed' in message

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_lowercase_username_skips_raw_attempt(self, mock_call, moodle_service):
        mock_call.side_effect = [MoodleError('post failed'), MoodleError('get failed')]

        with pytest.raises(MoodleError):
            moodle_service.request_sso_login_url(5, 'jane.doe', 'jane@example.com')

        assert mock_call.call_count == 2

    @patch('moodle_portal.services.moodle_service.MoodleService.call')
    def test_response_without_login_url(self, mock_call, moodle_service):
        mock_call.return_value = {'warnings': []}

        with pytest.raises(MoodleError, match='no login URL returned'):
            moodle_service.request_sso_login_url(5, 'jane', 'jane@example.com')

        assert mock_call.call_count == 2
