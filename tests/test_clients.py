"""Tests for the catalog and learning-path HTTP clients."""

from __future__ import annotations

import json
from urllib.parse import parse_qs

import httpx
import pytest

from learning_relay.clients import CatalogClient, LearningPathClient
from learning_relay.errors import UpstreamError

AUTH_URL = "https://catalog.test/api/v2/authenticate"
CATALOG_URL = "https://catalog.test/api/v2/catalogs/all/items"
PATH_URL = "https://paths.test/generateLearningPath"

CATALOG_ITEMS = [
    {
        "content_type": "Lab",
        "title": "BigQuery Basics",
        "level": "Introductory",
        "content_catalog_url": "https://catalog.test/focuses/1",
        "duration": 45,
    },
    {
        "content_type": "Course",
        "title": "Intro to GCP",
        "level": "Fundamental",
        "content_catalog_url": "https://catalog.test/course_templates/2",
    },
]


class CatalogServer:
    """In-process stand-in for the catalog API."""

    def __init__(self, auth_status: int = 200, items=CATALOG_ITEMS):
        self.auth_status = auth_status
        self.items = items
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/authenticate"):
            if self.auth_status != 200:
                return httpx.Response(self.auth_status, json={"error": "denied"})
            return httpx.Response(200, json={"auth_token": "tok-123"})
        if request.headers.get("Authorization") != "Bearer tok-123":
            return httpx.Response(401)
        return httpx.Response(200, json=self.items)


def catalog_client(server) -> CatalogClient:
    return CatalogClient(
        http=httpx.AsyncClient(transport=httpx.MockTransport(server)),
        auth_url=AUTH_URL,
        catalog_url=CATALOG_URL,
        access_key="ak",
        secret_key="sk",
        page_size=900,
    )


class TestCatalogClient:
    @pytest.mark.asyncio
    async def test_fetch_catalog(self):
        server = CatalogServer()
        client = catalog_client(server)

        entries = await client.fetch_catalog()

        assert [e.title for e in entries] == ["BigQuery Basics", "Intro to GCP"]
        assert entries[0].content_type == "Lab"
        assert entries[0].url == "https://catalog.test/focuses/1"
        assert entries[1].level == "Fundamental"

        auth, items = server.requests
        assert parse_qs(auth.content.decode()) == {
            "access_key": ["ak"],
            "secret_key": ["sk"],
        }
        assert items.url.params["per_page"] == "900"

    @pytest.mark.asyncio
    async def test_auth_failure(self):
        client = catalog_client(CatalogServer(auth_status=401))

        with pytest.raises(UpstreamError, match="HTTP 401"):
            await client.fetch_catalog()

    @pytest.mark.asyncio
    async def test_missing_token(self):
        def handler(request):
            return httpx.Response(200, json={"message": "ok"})

        with pytest.raises(UpstreamError, match="no token"):
            await catalog_client(handler).fetch_catalog()

    @pytest.mark.asyncio
    async def test_catalog_not_a_list(self):
        with pytest.raises(UpstreamError, match="not a list"):
            await catalog_client(CatalogServer(items={"items": []})).fetch_catalog()

    @pytest.mark.asyncio
    async def test_items_without_title_or_url_are_skipped(self):
        items = [
            {"content_type": "Lab"},
            {"content_type": "Lab", "title": "No Link"},
            {"content_type": "Lab", "title": "  ", "content_catalog_url": "https://catalog.test/3"},
            {"content_type": "Course", "content_catalog_url": "https://catalog.test/4"},
            {"content_type": "Lab", "title": 12, "content_catalog_url": "https://catalog.test/5"},
            "not an item",
        ] + CATALOG_ITEMS

        entries = await catalog_client(CatalogServer(items=items)).fetch_catalog()

        assert [e.title for e in entries] == ["BigQuery Basics", "Intro to GCP"]
        assert all(e.url for e in entries)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamError, match="request failed"):
            await catalog_client(handler).fetch_catalog()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(UpstreamError, match="invalid JSON"):
            await catalog_client(handler).fetch_catalog()


class TestLearningPathClient:
    @pytest.mark.asyncio
    async def test_generate(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "data": {
                        "learningPath": {
                            "summary": "ignored",
                            "highLeverageConcepts": [
                                {
                                    "title": "SQL fundamentals",
                                    "effortPercentage": 20,
                                    "impactPercentage": 60,
                                    "timeToLearn": "2 weeks",
                                    "resources": ["ignored"],
                                }
                            ],
                        }
                    }
                },
            )

        client = LearningPathClient(
            http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            url=PATH_URL,
            topic="learning cloud technology",
            level="beginner",
        )
        concepts = await client.generate("Become a data engineer")

        assert seen == [
            {
                "data": {
                    "topic": "learning cloud technology",
                    "level": "beginner",
                    "specificGoal": "Become a data engineer",
                }
            }
        ]
        assert [c.model_dump() for c in concepts] == [
            {
                "title": "SQL fundamentals",
                "effortPercentage": 20,
                "impactPercentage": 60,
                "timeToLearn": "2 weeks",
            }
        ]

    @pytest.mark.asyncio
    async def test_percentages_are_relayed_as_sent(self):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "data": {
                        "learningPath": {
                            "highLeverageConcepts": [
                                {
                                    "title": "IAM basics",
                                    "effortPercentage": "20%",
                                    "impactPercentage": "high",
                                    "timeToLearn": 3,
                                }
                            ]
                        }
                    }
                },
            )

        client = LearningPathClient(
            http=httpx.AsyncClient(transport=httpx.MockTransport(handler)), url=PATH_URL
        )
        (concept,) = await client.generate("Secure a project")

        assert concept.effortPercentage == "20%"
        assert concept.impactPercentage == "high"
        assert concept.timeToLearn == "3"

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        def handler(request):
            return httpx.Response(200, json={"data": {}})

        client = LearningPathClient(
            http=httpx.AsyncClient(transport=httpx.MockTransport(handler)), url=PATH_URL
        )
        with pytest.raises(UpstreamError, match="malformed"):
            await client.generate("anything")

    @pytest.mark.asyncio
    async def test_server_error(self):
        def handler(request):
            return httpx.Response(500, text="internal")

        client = LearningPathClient(
            http=httpx.AsyncClient(transport=httpx.MockTransport(handler)), url=PATH_URL
        )
        with pytest.raises(UpstreamError, match="HTTP 500"):
            await client.generate("anything")

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        client = LearningPathClient(http=http, url=PATH_URL)

        await client.close()

        assert not http.is_closed
        await http.aclose()
