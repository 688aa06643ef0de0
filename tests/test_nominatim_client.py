"""Unit tests for NominatimGeocoder."""
from unittest.mock import patch

import pytest
import responses
from requests.exceptions import RequestException

from feeds.models import Location
from geocoding.nominatim_client import NominatimGeocoder

SEARCH_URL = "https://geo.example.org/search"


@pytest.fixture
def geocoder():
    return NominatimGeocoder(base_url="https://geo.example.org/", timeout=5)


@pytest.fixture
def city_hall():
    return Location(name='City Hall', address='Main St 5', city='Springfield', country='US')


class TestNominatimGeocoder:
    """Test cases for NominatimGeocoder class."""

    @responses.activate
    def test_geocode_success(self, geocoder, city_hall):
        responses.add(
            responses.GET,
            SEARCH_URL,
            json=[{'lon': '-74.006', 'lat': '40.7128', 'display_name': 'City Hall'}],
            status=200
        )

        assert geocoder.geocode(city_hall) == (-74.006, 40.7128)
        request = responses.calls[0].request
        assert 'q=Main+St+5%2C+Springfield%2C+US' in request.url
        assert request.headers['User-Agent'] == 'calendar-feeds/1.0'

    @responses.activate
    def test_geocode_no_result(self, geocoder, city_hall):
        responses.add(responses.GET, SEARCH_URL, json=[], status=200)

        assert geocoder.geocode(city_hall) is None

    @responses.activate
    @pytest.mark.parametrize('payload', [
        [{'display_name': 'City Hall'}],
        [{'lon': 'west', 'lat': '40.7'}],
        {'error': 'Unable to geocode'},
    ])
    def test_geocode_malformed_result(self, geocoder, city_hall, payload):
        responses.add(responses.GET, SEARCH_URL, json=payload, status=200)

        assert geocoder.geocode(city_hall) is None

    def test_geocode_without_address(self, geocoder):
        assert geocoder.geocode(Location(name='Somewhere')) is None

    @responses.activate
    @patch('geocoding.nominatim_client.time.sleep')
    def test_geocode_with_retry_success(self, mock_sleep, geocoder, city_hall):
        responses.add(responses.GET, SEARCH_URL, body="Server Error", status=500)
        responses.add(responses.GET, SEARCH_URL, body="Server Error", status=503)
        responses.add(
            responses.GET,
            SEARCH_URL,
            json=[{'lon': '1.5', 'lat': '2.5'}],
            status=200
        )

        assert geocoder.geocode(city_hall) == (1.5, 2.5)
        assert len(responses.calls) == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]

    @responses.activate
    @patch('geocoding.nominatim_client.time.sleep')
    def test_geocode_all_retries_fail(self, mock_sleep, geocoder, city_hall):
        for _ in range(3):
            responses.add(responses.GET, SEARCH_URL, body="Server Error", status=500)

        with pytest.raises(RequestException):
            geocoder.geocode(city_hall)
        assert len(responses.calls) == 3
