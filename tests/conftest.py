import threading
import time
from contextlib import contextmanager
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from ocr_api.config import Settings
from ocr_api.main import create_app
from ocr_api.services.engine import OcrEngine, RawRecognition, RecognizedWord, get_engine_factory


class FakeEngine(OcrEngine):
    def __init__(self, language, factory):
        self.language = language
        self._factory = factory

    def recognize(self, image_bytes):
        self._factory.events.append(("recognize", self.language, len(image_bytes)))
        self._factory.started.set()
        if self._factory.delay:
            time.sleep(self._factory.delay)
        if isinstance(self._factory.outcome, Exception):
            raise self._factory.outcome
        return self._factory.outcome

    def close(self):
        self._factory.events.append(("close", self.language))


class FakeEngineFactory:
    """Stands in for TesseractEngine.open and records the engine lifecycle."""

    def __init__(self):
        self.outcome = RawRecognition(
            text="  HELLO world \n",
            confidence=91.5,
            words=[
                RecognizedWord(text="HELLO", confidence=93.0, left=10, top=10, width=80, height=20),
                RecognizedWord(text="world", confidence=90.0, left=100, top=10, width=70, height=20),
            ],
        )
        self.init_error = None
        self.events = []
        self.delay = 0.0
        self.started = threading.Event()

    @contextmanager
    def __call__(self, language, cfg):
        self.events.append(("open", language))
        if self.init_error is not None:
            raise self.init_error
        engine = FakeEngine(language, self)
        try:
            yield engine
        finally:
            engine.close()

    def kinds(self):
        return [event[0] for event in self.events]


def make_image_bytes(fmt="PNG", size=(200, 200), mode="RGB"):
    buf = BytesIO()
    Image.new(mode, size, "white").save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def engine_factory():
    return FakeEngineFactory()


@pytest.fixture
def make_client(engine_factory):
    def _make(**overrides):
        overrides.setdefault("app_env", "production")
        app = create_app(Settings(**overrides))
        app.dependency_overrides[get_engine_factory] = lambda: engine_factory
        return TestClient(app, raise_server_exceptions=False)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG")
