"""Tests for the GitHub hosting gateway."""

import base64
import json

import httpx
import pytest

from wiki_contrib.core.errors import ConfigurationError
from wiki_contrib.services.hosting import (
    BranchExistsError,
    GatewayError,
    GitHubGateway,
    PullRequestRef,
    RevisionConflictError,
)


class RecordingHandler:
    """Serve canned responses keyed by ``(method, path)``."""

    def __init__(self, responses: dict[tuple[str, str], httpx.Response]) -> None:
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.responses:
            return httpx.Response(500, json={"message": f"unexpected {key}"})
        return self.responses[key]


def _gateway(handler: RecordingHandler) -> GitHubGateway:
    return GitHubGateway(
        "ghp-test",
        owner="acme",
        repo="wiki",
        default_branch="main",
        api_url="https://github.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_reads_default_branch_head_with_auth_headers():
    handler = RecordingHandler(
        {("GET", "/repos/acme/wiki/branches/main"): httpx.Response(
            200, json={"commit": {"sha": "abc123"}}
        )}
    )
    gateway = _gateway(handler)

    assert await gateway.get_default_branch_head() == "abc123"

    request = handler.requests[0]
    assert request.headers["Authorization"] == "Bearer ghp-test"
    assert request.headers["Accept"] == "application/vnd.github+json"
    assert request.headers["X-GitHub-Api-Version"] == "2022-11-28"
    await gateway.close()


@pytest.mark.asyncio
async def test_create_branch_posts_ref():
    handler = RecordingHandler(
        {("POST", "/repos/acme/wiki/git/refs"): httpx.Response(201, json={})}
    )
    await _gateway(handler).create_branch("anon-edit/guides/intro/1", "abc123")
    body = json.loads(handler.requests[0].content)
    assert body == {"ref": "refs/heads/anon-edit/guides/intro/1", "sha": "abc123"}


@pytest.mark.asyncio
async def test_existing_branch_is_reported():
    handler = RecordingHandler(
        {("POST", "/repos/acme/wiki/git/refs"): httpx.Response(422, json={})}
    )
    with pytest.raises(BranchExistsError):
        await _gateway(handler).create_branch("taken", "abc123")


@pytest.mark.asyncio
async def test_file_revision_lookup():
    path = "/repos/acme/wiki/contents/public/content/guides/intro.md"
    handler = RecordingHandler({("GET", path): httpx.Response(200, json={"sha": "filesha"})})

    revision = await _gateway(handler).get_file_revision(
        "public/content/guides/intro.md", "main"
    )

    assert revision == "filesha"
    assert handler.requests[0].url.params["ref"] == "main"


@pytest.mark.asyncio
async def test_missing_file_has_no_revision():
    handler = RecordingHandler(
        {("GET", "/repos/acme/wiki/contents/public/content/guides/new.md"): httpx.Response(404)}
    )
    assert await _gateway(handler).get_file_revision(
        "public/content/guides/new.md", "main"
    ) is None


@pytest.mark.asyncio
async def test_commit_sends_base64_content_and_revision():
    path = "/repos/acme/wiki/contents/public/content/guides/intro.md"
    handler = RecordingHandler({("PUT", path): httpx.Response(200, json={})})

    await _gateway(handler).commit_file(
        "anon-edit/guides/intro/1",
        "public/content/guides/intro.md",
        "Hello world",
        "Update Intro",
        expected_revision="filesha",
    )

    body = json.loads(handler.requests[0].content)
    assert base64.b64decode(body["content"]).decode() == "Hello world"
    assert body["sha"] == "filesha"
    assert body["branch"] == "anon-edit/guides/intro/1"
    assert body["message"] == "Update Intro"


@pytest.mark.asyncio
async def test_commit_without_revision_omits_sha():
    path = "/repos/acme/wiki/contents/public/content/guides/new.md"
    handler = RecordingHandler({("PUT", path): httpx.Response(201, json={})})

    await _gateway(handler).commit_file("b", "public/content/guides/new.md", "x", "m")

    assert "sha" not in json.loads(handler.requests[0].content)


@pytest.mark.asyncio
async def test_commit_revision_mismatch_is_conflict():
    path = "/repos/acme/wiki/contents/public/content/guides/intro.md"
    handler = RecordingHandler({("PUT", path): httpx.Response(409, json={})})
    with pytest.raises(RevisionConflictError):
        await _gateway(handler).commit_file(
            "b", "public/content/guides/intro.md", "x", "m", expected_revision="stale"
        )


@pytest.mark.asyncio
async def test_open_pull_request_and_label():
    handler = RecordingHandler(
        {
            ("POST", "/repos/acme/wiki/pulls"): httpx.Response(
                201, json={"number": 42, "html_url": "https://github.test/acme/wiki/pull/42"}
            ),
            ("POST", "/repos/acme/wiki/issues/42/labels"): httpx.Response(200, json=[]),
        }
    )
    gateway = _gateway(handler)

    pr = await gateway.open_pull_request("[Anonymous] Update Intro", "body", "head", "main")
    await gateway.add_labels(pr.number, ["anonymous-edit", "needs-review"])

    assert pr == PullRequestRef(number=42, url="https://github.test/acme/wiki/pull/42")
    assert json.loads(handler.requests[0].content)["base"] == "main"
    assert json.loads(handler.requests[1].content) == {
        "labels": ["anonymous-edit", "needs-review"]
    }


@pytest.mark.asyncio
async def test_server_error_raises_gateway_error():
    handler = RecordingHandler({})
    with pytest.raises(GatewayError) as exc_info:
        await _gateway(handler).get_default_branch_head()
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_transport_error_raises_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    gateway = GitHubGateway(
        "ghp-test", api_url="https://github.test", transport=httpx.MockTransport(handler)
    )
    with pytest.raises(GatewayError):
        await gateway.add_labels(1, ["x"])


def test_missing_token_is_configuration_error():
    with pytest.raises(ConfigurationError):
        GitHubGateway(None)
