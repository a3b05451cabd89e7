"""Test doubles for the host inference capability.

Loosely coupled to production code: the fakes only implement the small
``availability`` / ``create`` / ``prompt`` surface the engine relies on.
"""

import asyncio
from typing import Optional

from jobtracker_ai.constants import HEALTH_CHECK_PROMPT
from jobtracker_ai.content.extractor import StaticContentExtractor
from jobtracker_ai.engine import ExtractionOrchestrator, SessionManager
from jobtracker_ai.llm.base import BaseInferenceCapability, BaseInferenceSession
from jobtracker_ai.models import AvailabilityStatus


COMPANY_RESPONSE = '{"company": "Acme Corp", "position": "Backend Engineer"}'
DESCRIPTION_RESPONSE = '{"jobDescription": "Build APIs.\\nReview code."}'

JOB_PAGE_TEXT = """Backend Engineer at Acme Corp
Location: Berlin
Full-time position

Requirements:
- 3+ years of Python
- Experience with asyncio
"""


def prompt_group(text: str) -> str:
    """Which extraction prompt (or the health probe) ``text`` is."""
    if text == HEALTH_CHECK_PROMPT:
        return "health"
    if "hiring company name" in text:
        return "company_and_position"
    return "job_description"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSession(BaseInferenceSession):
    """Session answering from the capability's scripted responses."""

    def __init__(self, capability: "FakeCapability"):
        super().__init__()
        self.capability = capability
        self.healthy = True

    async def _generate(self, text: str) -> str:
        group = prompt_group(text)
        self.capability.prompts.append(group)

        delay = self.capability.delays.get(group, 0)
        if delay:
            await asyncio.sleep(delay)

        if group == "health" and not self.healthy:
            raise RuntimeError("session is broken")
        failure = self.capability.failures.get(group)
        if failure is not None:
            raise failure
        return self.capability.responses.get(group, "")


class FakeCapability(BaseInferenceCapability):
    """Scripted inference capability.

    Attributes worth tweaking in tests:
        status / status_sequence: what ``availability()`` reports
        availability_error: raised by ``availability()`` when set
        create_delay / create_error: behavior of ``create()``
        responses / failures / delays: per prompt group
    """

    def __init__(
        self,
        status: AvailabilityStatus = AvailabilityStatus.AVAILABLE,
        create_delay: float = 0.0,
    ):
        self.status = status
        self.status_sequence: list[AvailabilityStatus] = []
        self.availability_error: Optional[Exception] = None
        self.create_delay = create_delay
        self.create_error: Optional[Exception] = None

        self.responses = {
            "health": "ok",
            "company_and_position": COMPANY_RESPONSE,
            "job_description": DESCRIPTION_RESPONSE,
        }
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}

        self.availability_calls = 0
        self.create_calls = 0
        self.sessions: list[FakeSession] = []
        self.prompts: list[str] = []
        self.closed = False

    @property
    def extraction_prompts(self) -> list[str]:
        return [group for group in self.prompts if group != "health"]

    @property
    def live_sessions(self) -> list[FakeSession]:
        return [session for session in self.sessions if not session.destroyed]

    async def availability(self) -> AvailabilityStatus:
        self.availability_calls += 1
        if self.availability_error is not None:
            raise self.availability_error
        if self.status_sequence:
            self.status = self.status_sequence.pop(0)
        return self.status

    async def create(self, **options) -> FakeSession:
        self.create_calls += 1
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.create_error is not None:
            raise self.create_error
        session = FakeSession(self)
        self.sessions.append(session)
        return session

    async def close(self) -> None:
        self.closed = True


def make_extractor(
    url: str = "https://careers.acme.example/jobs/backend-engineer",
    text: str = JOB_PAGE_TEXT,
    title: str = "Backend Engineer - Acme Corp",
) -> StaticContentExtractor:
    return StaticContentExtractor(url=url, text=text, title=title)


def make_engine(capability: FakeCapability, extractor=None, **kwargs) -> ExtractionOrchestrator:
    """Fresh engine per test, without the background heartbeat."""
    sessions = kwargs.pop("sessions", None)
    if sessions is None:
        sessions = SessionManager(capability, heartbeat_interval=0)
    return ExtractionOrchestrator(
        extractor or make_extractor(),
        capability,
        sessions=sessions,
        **kwargs,
    )


async def wait_for_prompts(capability: FakeCapability, count: int, timeout: float = 1.0) -> None:
    """Wait until ``count`` extraction prompts were sent."""
    async def _poll():
        while len(capability.extraction_prompts) < count:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)
