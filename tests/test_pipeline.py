import asyncio
import json

import aiohttp
from aiohttp import web

from formbridge import github as github_module
from formbridge.github import GitHubClient
from formbridge.logs import LogSink
from formbridge.pipeline import SubmissionPipeline
from formbridge.settings import Settings
from formbridge.site_config import RepositoryTarget
from formbridge.submission import SubmissionRequest
from tests.conftest import FakeGitHubClient

TARGET = RepositoryTarget("octo", "site", "main")

ALLOWED_CONFIG = b"""
timeline:
  allowedFields: [name, title]
  transforms:
    email: md5
"""


def _request(fields, options=None):
    return SubmissionRequest(target=TARGET, property="timeline", fields=fields, options=options or {})


async def test_successful_pull_request(settings, fake_client, timeline_fields):
    response = await SubmissionPipeline(settings, fake_client).handle(_request(timeline_fields), LogSink())
    assert response.status == 200
    assert response.payload["success"] is True
    assert response.payload["pull_request"] == {"number": 7, "url": "https://github.com/octo/site/pull/7"}
    assert fake_client.pull_requests[0]["title"] == "New timeline entry: T"


async def test_missing_fields_make_no_remote_mutation(settings, fake_client, timeline_fields):
    del timeline_fields["email"]
    del timeline_fields["title"]
    response = await SubmissionPipeline(settings, fake_client).handle(_request(timeline_fields), LogSink())
    assert response.status == 400
    assert response.payload["error"] == "MISSING_REQUIRED_FIELDS"
    assert response.payload["fields"] == ["email", "title"]
    assert fake_client.mutations == []


async def test_allowed_fields_filter_committed_record(settings, timeline_fields):
    client = FakeGitHubClient(config_document=ALLOWED_CONFIG)
    response = await SubmissionPipeline(settings, client).handle(
        _request({**timeline_fields, "spam": "x"}), LogSink()
    )
    assert response.status == 200
    (content,) = client.files.values()
    record = json.loads(content)
    assert set(record) == {"id", "name", "title", "email", "date", "description"}
    assert "spam" not in record
    assert record["email"] != "a@b.com"


async def test_redirect_option(settings, fake_client, timeline_fields):
    response = await SubmissionPipeline(settings, fake_client).handle(
        _request(timeline_fields, {"redirect": "https://site.test/thanks"}), LogSink()
    )
    assert response.status == 302
    assert response.redirect == "https://site.test/thanks"


async def test_remote_failure_reports_step(settings, timeline_fields):
    client = FakeGitHubClient(fail_on="create_pull_request")
    response = await SubmissionPipeline(settings, client).handle(_request(timeline_fields), LogSink())
    assert response.status == 500
    assert response.payload["error"] == "GITHUB_API_ERROR"
    assert response.payload["step"] == "create_pull_request"
    assert "create_pull_request exploded" in response.payload["message"]
    assert "log" not in response.payload


async def test_missing_token_is_configuration_error(fake_client, timeline_fields):
    response = await SubmissionPipeline(Settings(), fake_client).handle(_request(timeline_fields), LogSink())
    assert response.status == 500
    assert response.payload["error"] == "CONFIGURATION_ERROR"
    assert fake_client.calls == []


async def test_debug_includes_request_log(fake_client, timeline_fields):
    settings = Settings(github_token="t", debug=True)
    del timeline_fields["name"]
    response = await SubmissionPipeline(settings, fake_client).handle(_request(timeline_fields), LogSink())
    assert response.status == 400
    assert any("Rejected submission" in line for line in response.payload["log"])


def _slow_github(slow_route: str) -> web.Application:
    async def maybe_wait(route: str) -> None:
        if route == slow_route:
            await asyncio.sleep(1)

    async def get_contents(request: web.Request) -> web.Response:
        await maybe_wait("contents")
        return web.json_response({"message": "Not Found"}, status=404)

    async def get_ref(request: web.Request) -> web.Response:
        return web.json_response({"object": {"sha": "base-sha"}})

    async def create_ref(request: web.Request) -> web.Response:
        await maybe_wait("refs")
        return web.json_response({"ref": "created"}, status=201)

    async def put_contents(request: web.Request) -> web.Response:
        return web.json_response({"content": {}}, status=201)

    async def create_pull(request: web.Request) -> web.Response:
        return web.json_response({"number": 9, "html_url": "https://github.test/pull/9"}, status=201)

    app = web.Application()
    app.router.add_get("/repos/{owner}/{repo}/contents/{path:.+}", get_contents)
    app.router.add_put("/repos/{owner}/{repo}/contents/{path:.+}", put_contents)
    app.router.add_get("/repos/{owner}/{repo}/git/ref/heads/{branch:.+}", get_ref)
    app.router.add_post("/repos/{owner}/{repo}/git/refs", create_ref)
    app.router.add_post("/repos/{owner}/{repo}/pulls", create_pull)
    return app


async def _handle_against(aiohttp_server, settings, slow_route, fields):
    server = await aiohttp_server(_slow_github(slow_route))
    async with aiohttp.ClientSession() as session:
        client = GitHubClient(session, settings.github_token, str(server.make_url("/")))
        return await SubmissionPipeline(settings, client).handle(_request(fields), LogSink())


async def test_slow_config_fetch_falls_back_to_defaults(aiohttp_server, settings, timeline_fields, monkeypatch):
    monkeypatch.setattr(github_module, "REQUEST_TIMEOUT", 0.2)
    response = await _handle_against(aiohttp_server, settings, "contents", timeline_fields)
    assert response.status == 200
    assert response.payload["pull_request"]["number"] == 9


async def test_slow_branch_creation_reports_step(aiohttp_server, settings, timeline_fields, monkeypatch):
    monkeypatch.setattr(github_module, "REQUEST_TIMEOUT", 0.2)
    response = await _handle_against(aiohttp_server, settings, "refs", timeline_fields)
    assert response.status == 500
    assert response.payload["error"] == "GITHUB_API_ERROR"
    assert response.payload["step"] == "create_branch"
    assert "timed out" in response.payload["message"]
