"""Shared fixtures for the test suite: fake HTTP session and image bytes."""

import json
import threading
import time
from dataclasses import replace
from io import BytesIO

import requests
from PIL import Image

from grimoire.api_utils import get_card_image_url, get_card_url
from grimoire.config import Settings
from grimoire.models import BACK, FRONT

BASE_URL = "https://api.scryfall.com"


def make_response(status=200, json_body=None, content=b"", url=""):
    """Build a real requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status
    response.url = url
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = content
    return response


def png_bytes(color=(200, 30, 30, 255), size=(63, 88), mode="RGBA"):
    buffer = BytesIO()
    Image.new(mode, size, color).save(buffer, "PNG")
    return buffer.getvalue()


def card_url(set_code, number):
    return get_card_url(BASE_URL, set_code, number)


def image_url(set_code, number, face=FRONT):
    return get_card_image_url(BASE_URL, set_code, number, face)


class FakeSession:
    """Stands in for requests.Session.get.

    ``routes`` maps a URL to either a list of responses (served in order, the
    last one repeating), an exception instance to raise, or a callable
    returning a response. Unknown URLs get a 404.
    """

    def __init__(self, routes=None, delays=None):
        self.routes = dict(routes or {})
        self.delays = dict(delays or {})
        self.calls = []
        self._lock = threading.Lock()
        self._served = {}

    def get(self, url, timeout=None):
        with self._lock:
            self.calls.append(url)
            count = self._served.get(url, 0)
            self._served[url] = count + 1

        if url in self.delays:
            time.sleep(self.delays[url])

        route = self.routes.get(url)
        if route is None:
            return make_response(404, json_body={"object": "error"}, url=url)
        if isinstance(route, BaseException):
            raise route
        if callable(route):
            return route()
        return route[min(count, len(route) - 1)]

    def call_count(self, url):
        with self._lock:
            return self.calls.count(url)


def card_routes(set_code, number, layout="normal", image=None, image_status=200):
    """Routes serving one card's metadata and its artwork."""
    image = image if image is not None else png_bytes()
    routes = {card_url(set_code, number): [make_response(200, json_body={"layout": layout})]}
    faces = [FRONT, BACK] if layout in ("transform", "modal_dfc") else [FRONT]
    for face in faces:
        url = image_url(set_code, number, face)
        if image_status == 200:
            routes[url] = [make_response(200, content=image, url=url)]
        else:
            routes[url] = [make_response(image_status, url=url)]
    return routes


def fast_settings(**overrides):
    """Settings with every delay removed so tests run quickly."""
    settings = replace(
        Settings(),
        min_request_interval=0.0,
        resolve_base_delay=0.0,
        resolve_throttle_delay=0.0,
        image_base_delay=0.0,
        image_throttle_delay=0.0,
        worker_count=2,
    )
    return replace(settings, **overrides)
