"""Shared fixtures: a mocked DynamoDB table and a feed on top of it."""
from datetime import datetime, timezone

import boto3
import pytest
from moto import mock_aws

from feeds.events_manager import EventsManagerFeed
from feeds.models import Event
from feeds.permissions import CapabilityAuthorizer
from storage.dynamodb_backend import EventsManagerStore

TABLE_NAME = 'test-calendar-events'

EDITOR = 1
CONTRIBUTOR = 2
AUTHOR = 3
VISITOR = 4

# 2024-04-20 00:00 UTC
DAY0 = int(datetime(2024, 4, 20, tzinfo=timezone.utc).timestamp())
HOUR = 3600
DAY = 86400


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_table(aws_credentials):
    """Create a mock DynamoDB table for testing."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {'AttributeName': 'record_key', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'record_key', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )
        yield table


@pytest.fixture
def store(dynamodb_table):
    return EventsManagerStore(TABLE_NAME, region_name='us-east-1')


@pytest.fixture
def authorizer():
    return CapabilityAuthorizer({
        EDITOR: {
            'edit_events', 'edit_others_events', 'publish_events',
            'publish_locations', 'edit_event_categories',
        },
        CONTRIBUTOR: {'edit_events'},
        AUTHOR: {'edit_events', 'publish_events'},
    })


@pytest.fixture
def feed(store, authorizer):
    return EventsManagerFeed(store, authorizer)


@pytest.fixture
def make_event():
    """Factory for canonical events with sensible defaults."""
    def _make(**overrides) -> Event:
        fields = {
            'uid': 'spring-fair-2024',
            'title': 'Spring Fair',
            'description': 'Stalls, music and food.',
            'excerpt': 'Annual spring fair',
            'start_date': DAY0 + 10 * HOUR,
            'end_date': DAY0 + 18 * HOUR,
            'owner_user_id': EDITOR,
        }
        fields.update(overrides)
        return Event(**fields)
    return _make


def scan_records(table, record_type):
    """All raw items of one record type."""
    items = table.scan()['Items']
    return [item for item in items if item.get('record_type') == record_type]
