# tests/conftest.py
# ============================================================
# Shared Test Fixtures
# ============================================================
# Fakes for the two external capabilities (recognition provider
# and compositor) plus ready-made extraction results, so every
# test runs without network access or credentials.
# ============================================================

import asyncio
import io

import pytest
from PIL import Image

from idmerge.classification.classifier import SideClassifier
from idmerge.classification.matcher import BatchMatcher
from idmerge.errors import CompositionError, RecognitionError, RecognitionErrorKind
from idmerge.ocr.gateway import RecognitionGateway
from idmerge.ocr.hints import RecognitionHint
from idmerge.ocr.results import BackFields, FrontFields
from idmerge.utils.events import RecordingEventSink

FRONT = RecognitionHint.FRONT
BACK = RecognitionHint.BACK
COMBINED = RecognitionHint.COMBINED

# name + id + gender + nation + address = 90
SCENARIO_FRONT = FrontFields(
    name="李雷",
    id_number="11010119900101001X",
    gender="男",
    nation="汉",
    address="北京市东城区东华门大街1号",
)

FULL_FRONT = FrontFields(
    name="李雷",
    id_number="11010119900101001X",
    gender="男",
    nation="汉",
    birthday="19900101",
    address="北京市东城区东华门大街1号",
)

MARKER_BACK = BackFields(keyword_hits=frozenset({"中华人民共和国"}))

COMPLETE_BACK = BackFields(
    issue_authority="北京市公安局东城分局",
    valid_period="2015.01.01-2035.01.01",
    keyword_hits=frozenset({"中华人民共和国", "居民身份证"}),
)


# ============================================================
# Fakes
# ============================================================

def invalid(message: str = "not recognized") -> RecognitionError:
    return RecognitionError(RecognitionErrorKind.INVALID, message)


class FakeRecognition:
    """
    Scripted RecognitionCapability.

    `responses` maps (image bytes, hint) to a result, an exception, or a
    list of those consumed one per call (the last one repeats). Anything
    not scripted is rejected as INVALID. Images in `hang` never answer.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []
        self.hang = set()
        self.closed = False

    async def recognize(self, image, hint):
        self.calls.append((image, hint))
        if image in self.hang:
            await asyncio.sleep(3600)

        outcome = self.responses.get((image, hint))
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if outcome is None:
            raise invalid()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def hints_for(self, image):
        return [hint for data, hint in self.calls if data == image]

    async def aclose(self):
        self.closed = True


class RecordingSleep:
    """Stand-in for asyncio.sleep that returns at once and remembers delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeCompositor:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def compose(self, front, back, fields=None):
        self.calls.append((front, back, fields))
        if self.fail:
            raise CompositionError("renderer crashed")
        return b"%PDF-1.4 fake"


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def events():
    return RecordingEventSink()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def recognition():
    return FakeRecognition()


@pytest.fixture
def gateway(recognition, sleep, events):
    return RecognitionGateway(
        recognition, timeout=5, max_attempts=3, backoff=2, sleep=sleep, events=events
    )


@pytest.fixture
def matcher(gateway):
    return BatchMatcher(SideClassifier(gateway), max_concurrent_images=4)


def png_bytes(size=(320, 200), color=(200, 30, 30), fmt="PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def make_png():
    return png_bytes
