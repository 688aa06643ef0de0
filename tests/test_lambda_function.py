"""Integration tests for Lambda handler."""
import json
import logging
import os
from unittest.mock import Mock, patch

import pytest

from conftest import DAY0, EDITOR, HOUR, TABLE_NAME
from feeds.models import Event, SaveErrorKind, SaveResult
from lambda_function import JsonFormatter, lambda_handler, setup_logging


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'TABLE_NAME': TABLE_NAME,
        'LOG_LEVEL': 'INFO',
        'FEEDS': 'events-manager',
        'ACTING_USER_ID': str(EDITOR),
        'USER_CAPABILITIES': json.dumps({
            str(EDITOR): ['edit_events', 'publish_events', 'publish_locations'],
        }),
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture
def mock_feed():
    feed = Mock()
    registry = Mock()
    registry.get_feed.return_value = feed
    with patch('lambda_function.build_registry', return_value=registry):
        yield feed


@pytest.fixture
def event_payload():
    return {
        'uid': 'spring-fair-2024',
        'title': 'Spring Fair',
        'start_date': DAY0 + 10 * HOUR,
        'end_date': DAY0 + 18 * HOUR,
        'location': {'name': 'City Hall', 'zip': '10001'},
    }


class TestLambdaHandler:
    """Test cases for Lambda handler."""

    def test_list(self, mock_env, mock_context, mock_feed):
        mock_feed.list_events.return_value = [
            Event(uid='a', title='A', start_date=DAY0, end_date=DAY0 + HOUR)
        ]

        response = lambda_handler(
            {'action': 'list', 'start': DAY0, 'end': str(DAY0), 'category': 'music'},
            mock_context
        )

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert [e['uid'] for e in body['events']] == ['a']
        assert 'duration_seconds' in body
        mock_feed.list_events.assert_called_once_with(DAY0, DAY0, 'music')

    def test_get_not_found(self, mock_env, mock_context, mock_feed):
        mock_feed.get_event.return_value = None

        response = lambda_handler({'action': 'get', 'uid': 'missing'}, mock_context)

        assert response['statusCode'] == 404

    def test_save_defaults_owner_to_acting_user(self, mock_env, mock_context, mock_feed, event_payload):
        mock_feed.save_event.return_value = SaveResult(event_id=3, post_id=4)

        response = lambda_handler({'action': 'save', 'event': event_payload}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['result'] == {
            'success': True, 'error': None, 'error_kind': None,
            'event_id': 3, 'post_id': 4,
        }
        saved = mock_feed.save_event.call_args[0][0]
        assert saved.owner_user_id == EDITOR
        assert saved.location.zip == '10001'

    def test_save_permission_denied(self, mock_env, mock_context, mock_feed, event_payload):
        result = SaveResult(event_id=3)
        result.set_error('No permission', SaveErrorKind.PERMISSION_DENIED)
        mock_feed.save_event.return_value = result

        response = lambda_handler({'action': 'save', 'event': event_payload}, mock_context)

        assert response['statusCode'] == 403
        body = json.loads(response['body'])
        assert body['result']['error_kind'] == 'permission_denied'
        assert body['result']['event_id'] == 3

    def test_save_backend_failure(self, mock_env, mock_context, mock_feed, event_payload):
        result = SaveResult()
        result.set_error('disk full', SaveErrorKind.BACKEND_WRITE_FAILURE)
        mock_feed.save_event.return_value = result

        response = lambda_handler({'action': 'save', 'event': event_payload}, mock_context)

        assert response['statusCode'] == 500

    def test_delete(self, mock_env, mock_context, mock_feed):
        response = lambda_handler({'action': 'delete', 'uid': 'spring-fair-2024'}, mock_context)

        assert response['statusCode'] == 200
        mock_feed.delete_event.assert_called_once_with('spring-fair-2024')

    def test_unknown_action(self, mock_env, mock_context, mock_feed):
        response = lambda_handler({'action': 'sync'}, mock_context)

        assert response['statusCode'] == 400

    def test_invalid_request(self, mock_env, mock_context, mock_feed):
        response = lambda_handler({'action': 'get'}, mock_context)

        assert response['statusCode'] == 400
        assert json.loads(response['body'])['error_type'] == 'KeyError'

    def test_feed_not_available(self, mock_env, mock_context):
        registry = Mock()
        registry.get_feed.return_value = None
        with patch('lambda_function.build_registry', return_value=registry):
            response = lambda_handler({'action': 'list', 'feed': 'other'}, mock_context)

        assert response['statusCode'] == 404

    def test_unexpected_error(self, mock_env, mock_context, mock_feed):
        mock_feed.list_events.side_effect = RuntimeError('boom')

        response = lambda_handler({'action': 'list', 'start': 0, 'end': 0}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Request failed'
        assert body['error_type'] == 'RuntimeError'


class TestEndToEnd:
    """Handler against the mocked DynamoDB table."""

    def test_save_then_get(self, dynamodb_table, mock_env, mock_context, event_payload):
        saved = lambda_handler({'action': 'save', 'event': event_payload}, mock_context)
        found = lambda_handler({'action': 'get', 'uid': 'spring-fair-2024'}, mock_context)
        listed = lambda_handler({'action': 'list', 'start': DAY0, 'end': DAY0}, mock_context)

        assert saved['statusCode'] == 200
        body = json.loads(found['body'])
        assert body['event']['uid'] == 'spring-fair-2024'
        assert body['event']['location']['name'] == 'City Hall'
        assert len(json.loads(listed['body'])['events']) == 1


def test_setup_logging_installs_json_formatter():
    setup_logging('DEBUG')

    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert isinstance(root_logger.handlers[0].formatter, JsonFormatter)


def test_json_formatter():
    record = logging.LogRecord('feeds', logging.INFO, __file__, 1, 'saved %s', ('x',), None)

    data = json.loads(JsonFormatter().format(record))

    assert data['message'] == 'saved x'
    assert data['level'] == 'INFO'
    assert data['logger'] == 'feeds'
