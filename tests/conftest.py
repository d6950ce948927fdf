# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Iterator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ["ENVIRONMENT"] = "test"
os.environ["STORE_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TOKEN_SIGNING_SECRET"] = "test-token-signing-secret"
os.environ["CODE_ENCRYPTION_SECRET"] = "test-code-encryption-secret"
os.environ["RECAPTCHA_SECRET_KEY"] = "test-recaptcha-secret"
os.environ["GITHUB_TOKEN"] = "test-github-token"
os.environ["SENDGRID_API_KEY"] = "test-sendgrid-key"
os.environ["SENDGRID_FROM_EMAIL"] = "noreply@example.com"
os.environ.pop("OPENAI_API_KEY", None)

from wiki_contrib.api.v1 import dependencies as api_dependencies  # noqa: E402
from wiki_contrib.main import app as fastapi_app  # noqa: E402
from wiki_contrib.services.captcha import CaptchaResult  # noqa: E402
from wiki_contrib.services.contribution import ContributionOrchestrator  # noqa: E402
from wiki_contrib.services.crypto import SecretCipher  # noqa: E402
from wiki_contrib.services.email import EmailDeliveryError  # noqa: E402
from wiki_contrib.services.hosting import GatewayError, PullRequestRef  # noqa: E402
from wiki_contrib.services.moderation import ContentModerator  # noqa: E402
from wiki_contrib.services.otp import OneTimeCodeStore  # noqa: E402
from wiki_contrib.services.store import MemoryStore  # noqa: E402
from wiki_contrib.services.tokens import VerificationTokenService  # noqa: E402
from wiki_contrib.services.verification import EmailVerificationService  # noqa: E402

START_TIME = 1_760_000_000.0


class FakeClock:
    """Manually advanced clock shared by every component under test."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubCaptcha:
    """Captcha validator returning a fixed verdict."""

    def __init__(self, score: float = 0.9, accepted: bool = True) -> None:
        self.result = CaptchaResult(accepted=accepted, score=score)
        self.calls: list[tuple[str, str]] = []

    async def validate(self, token: str, client_ip: str) -> CaptchaResult:
        self.calls.append((token, client_ip))
        return self.result


class StubMailer:
    """Mailer that records codes instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def send_verification_code(self, to: str, code: str) -> None:
        if self.fail:
            raise EmailDeliveryError("SendGrid API error: 500")
        self.sent.append((to, code))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


class FakeGateway:
    """In-memory hosting gateway recording every call.

    ``fail_on`` names a method that raises ``GatewayError`` when called.
    """

    default_branch = "main"

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.files: dict[str, str] = {}
        self.branches: dict[str, str] = {"main": "headsha0000000"}
        self.commits: list[dict[str, Any]] = []
        self.pull_requests: list[dict[str, Any]] = []
        self.labels: dict[int, list[str]] = {}
        self.fail_on: str | None = None

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if self.fail_on == name:
            raise GatewayError(f"{name} failed", status_code=500)

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def get_default_branch_head(self) -> str:
        self._record("get_default_branch_head")
        return self.branches[self.default_branch]

    async def create_branch(self, name: str, from_sha: str) -> None:
        self._record("create_branch", name, from_sha)
        self.branches[name] = from_sha

    async def get_file_revision(self, path: str, branch: str) -> str | None:
        self._record("get_file_revision", path, branch)
        return self.files.get(path)

    async def commit_file(
        self,
        branch: str,
        path: str,
        content: str,
        message: str,
        expected_revision: str | None = None,
    ) -> None:
        self._record("commit_file", branch, path)
        self.commits.append(
            {
                "branch": branch,
                "path": path,
                "content": content,
                "message": message,
                "expected_revision": expected_revision,
            }
        )

    async def open_pull_request(
        self, title: str, body: str, head: str, base: str
    ) -> PullRequestRef:
        self._record("open_pull_request", title, head, base)
        number = 100 + len(self.pull_requests) + 1
        self.pull_requests.append({"title": title, "body": body, "head": head, "base": base})
        return PullRequestRef(number=number, url=f"https://github.com/o/r/pull/{number}")

    async def add_labels(self, pr_number: int, labels: list[str]) -> None:
        self._record("add_labels", pr_number, labels)
        self.labels[pr_number] = list(labels)

    async def delete_branch(self, name: str) -> None:  # pragma: no cover - must never run
        self._record("delete_branch", name)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def memory_store(clock: FakeClock) -> MemoryStore:
    return MemoryStore(clock)


@pytest.fixture()
def cipher() -> SecretCipher:
    return SecretCipher("test-code-encryption-secret")


@pytest.fixture()
def code_store(memory_store: MemoryStore, cipher: SecretCipher, clock: FakeClock) -> OneTimeCodeStore:
    return OneTimeCodeStore(memory_store, cipher, ttl_seconds=600, clock=clock)


@pytest.fixture()
def token_service(clock: FakeClock) -> VerificationTokenService:
    return VerificationTokenService("test-token-signing-secret", ttl_seconds=86_400, clock=clock)


@pytest.fixture()
def mailer() -> StubMailer:
    return StubMailer()


@pytest.fixture()
def captcha() -> StubCaptcha:
    return StubCaptcha()


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def verification_service(
    memory_store: MemoryStore,
    code_store: OneTimeCodeStore,
    token_service: VerificationTokenService,
    mailer: StubMailer,
    clock: FakeClock,
) -> EmailVerificationService:
    return EmailVerificationService(memory_store, code_store, token_service, mailer, clock=clock)


@pytest.fixture()
def orchestrator(
    memory_store: MemoryStore,
    token_service: VerificationTokenService,
    captcha: StubCaptcha,
    gateway: FakeGateway,
    clock: FakeClock,
) -> ContributionOrchestrator:
    return ContributionOrchestrator(
        tokens=token_service,
        captcha=captcha,  # type: ignore[arg-type]
        moderator=ContentModerator(None),
        gateway=gateway,
        store=memory_store,
        clock=clock,
    )


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_service_dependencies(
    app: FastAPI,
    memory_store: MemoryStore,
    token_service: VerificationTokenService,
    gateway: FakeGateway,
    verification_service: EmailVerificationService,
    orchestrator: ContributionOrchestrator,
) -> Iterator[None]:
    overrides = {
        api_dependencies.get_kv_store: lambda: memory_store,
        api_dependencies.get_token_service: lambda: token_service,
        api_dependencies.get_hosting_gateway: lambda: gateway,
        api_dependencies.get_verification_service: lambda: verification_service,
        api_dependencies.get_orchestrator: lambda: orchestrator,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def submission(token_service: VerificationTokenService) -> dict[str, Any]:
    """Valid camelCase submission payload for ``user@example.com``."""
    return {
        "section": "guides",
        "pageId": "beginner-guide",
        "pageTitle": "Beginner Guide",
        "content": "Hello world",
        "email": "user@example.com",
        "displayName": "Helpful Slayer",
        "reason": "Fixed a typo",
        "verificationToken": token_service.issue("user@example.com"),
        "captchaToken": "captcha-token",
    }
