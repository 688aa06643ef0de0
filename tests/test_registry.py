"""Unit tests for FeedRegistry."""
from unittest.mock import Mock

import pytest

from feeds.registry import FeedRegistry


def fake_feed(identifier, available=True):
    feed = Mock()
    feed.identifier = identifier
    feed.is_feed_available.return_value = available
    return feed


def test_from_config_builds_enabled_feeds():
    factory = Mock(return_value=fake_feed('events-manager'))

    registry = FeedRegistry.from_config(['events-manager'], {'events-manager': factory})

    factory.assert_called_once_with()
    assert [f.identifier for f in registry.get_feeds()] == ['events-manager']


def test_from_config_rejects_unknown_feed():
    with pytest.raises(ValueError, match='the-events-calendar'):
        FeedRegistry.from_config(['the-events-calendar'], {'events-manager': Mock()})


def test_unavailable_feeds_are_skipped():
    available = fake_feed('events-manager')
    missing = fake_feed('other', available=False)

    registry = FeedRegistry([missing, available])

    assert registry.get_feeds() == [available]
    missing.init.assert_not_called()


def test_feeds_initialized_once():
    feed = fake_feed('events-manager')
    registry = FeedRegistry([feed])

    registry.get_feeds()
    registry.get_feeds()

    feed.init.assert_called_once_with()
    feed.is_feed_available.assert_called_once_with()


def test_get_feed():
    feed = fake_feed('events-manager')
    registry = FeedRegistry([feed])

    assert registry.get_feed('events-manager') is feed
    assert registry.get_feed('unknown') is None


def test_registry_over_real_store(feed):
    registry = FeedRegistry([feed])

    assert registry.get_feed('events-manager') is feed
    assert feed.description == 'Events Manager'
