"""AWS Lambda handler exposing the calendar feeds to the host."""
import json
import logging
import os
import time
from typing import Any, Dict, Optional

from feeds.events_manager import EventsManagerFeed
from feeds.models import Event, SaveErrorKind, SaveResult
from feeds.permissions import CapabilityAuthorizer
from feeds.registry import FeedRegistry
from geocoding.nominatim_client import NominatimGeocoder
from storage.dynamodb_backend import EventsManagerStore
from storage.tenancy import TenantContext


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes')


def build_registry() -> FeedRegistry:
    """
    Build the feed registry from environment variables.

    Returns:
        FeedRegistry with the feeds named in FEEDS
    """
    table_name = os.environ.get('TABLE_NAME', 'calendar-events')
    capabilities = json.loads(os.environ.get('USER_CAPABILITIES', '{}'))
    geocoder_url = os.environ.get('GEOCODER_URL')

    def events_manager() -> EventsManagerFeed:
        store = EventsManagerStore(
            table_name=table_name,
            tenants=TenantContext(
                tenant_id=int(os.environ.get('TENANT_ID', '1')),
                multisite=_env_flag('MULTISITE')
            ),
            site_url=os.environ.get('SITE_URL', 'https://example.org'),
            timezone=os.environ.get('TIMEZONE', 'UTC')
        )
        geocoder = None
        if geocoder_url:
            geocoder = NominatimGeocoder(
                base_url=geocoder_url,
                timeout=int(os.environ.get('GEOCODER_TIMEOUT', '10'))
            )
        return EventsManagerFeed(
            store,
            CapabilityAuthorizer(capabilities),
            geocoder=geocoder,
            delete_permanently=_env_flag('DELETE_PERMANENTLY')
        )

    enabled = [
        f.strip() for f in os.environ.get('FEEDS', 'events-manager').split(',')
        if f.strip()
    ]
    return FeedRegistry.from_config(
        enabled, {EventsManagerFeed.IDENTIFIER: events_manager}
    )


def _save_result_body(result: SaveResult) -> Dict[str, Any]:
    return {
        'success': result.success,
        'error': result.error,
        'error_kind': result.error_kind.value if result.error_kind else None,
        'event_id': result.event_id,
        'post_id': result.post_id,
    }


def _response(status_code: int, body: Dict[str, Any], start_time: float) -> Dict[str, Any]:
    body['duration_seconds'] = round(time.time() - start_time, 2)
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for calendar feed requests.

    The payload names an action ('list', 'get', 'save', 'delete') and
    optionally a feed identifier (default: 'events-manager').

    Args:
        event: Request payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    acting_user_id: Optional[str] = os.environ.get('ACTING_USER_ID')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = event.get('action', 'list')
    feed_id = event.get('feed', EventsManagerFeed.IDENTIFIER)
    logger.info(
        f"Lambda execution started",
        extra={'action': action, 'feed': feed_id}
    )

    try:
        registry = build_registry()
        feed = registry.get_feed(feed_id)
        if feed is None:
            return _response(404, {'message': f"Feed '{feed_id}' is not available"}, start_time)

        if action == 'list':
            events = feed.list_events(
                int(event['start']), int(event['end']), event.get('category')
            )
            return _response(200, {
                'message': f"Found {len(events)} events",
                'events': [e.to_dict() for e in events]
            }, start_time)

        if action == 'get':
            found = feed.get_event(event['uid'])
            if found is None:
                return _response(404, {'message': f"Event '{event['uid']}' not found"}, start_time)
            return _response(200, {'message': 'Event found', 'event': found.to_dict()}, start_time)

        if action == 'save':
            payload = dict(event['event'])
            if acting_user_id and payload.get('owner_user_id') is None:
                payload['owner_user_id'] = int(acting_user_id)
            result = feed.save_event(Event.from_dict(payload))
            if result.success:
                status_code = 200
            elif result.error_kind is SaveErrorKind.PERMISSION_DENIED:
                status_code = 403
            else:
                status_code = 500
            logger.info(
                f"Save finished with status {status_code}",
                extra={'event_id': result.event_id, 'error': result.error}
            )
            return _response(status_code, {
                'message': 'Event saved' if result.success else 'Event not fully saved',
                'result': _save_result_body(result)
            }, start_time)

        if action == 'delete':
            feed.delete_event(event['uid'])
            return _response(200, {'message': f"Event '{event['uid']}' deleted"}, start_time)

        return _response(400, {'message': f"Unknown action '{action}'"}, start_time)

    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Invalid request: {e}", extra={'error_type': type(e).__name__})
        return _response(400, {
            'message': 'Invalid request',
            'error': str(e),
            'error_type': type(e).__name__
        }, start_time)

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, {
            'message': 'Request failed',
            'error': str(e),
            'error_type': type(e).__name__
        }, start_time)
