"""Shared fixtures and fakes for Learning Relay tests."""

from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from learning_relay.models import CatalogEntry, LearningConcept


def make_entry(title: str, content_type: str = "Lab", url: Optional[str] = None) -> CatalogEntry:
    slug = title.lower().replace(" ", "-")
    return CatalogEntry(
        content_type=content_type,
        title=title,
        level="Introductory",
        url=url or f"https://catalog.test/{slug}",
    )


class FakeCatalogFetcher:
    """Catalog fetcher that counts calls and can be held open with a gate."""

    def __init__(self, entries: tuple[CatalogEntry, ...], gated: bool = False) -> None:
        self.entries = entries
        self.calls = 0
        self.gate = asyncio.Event()
        if not gated:
            self.gate.set()
        self.failures: list[Exception] = []

    async def __call__(self) -> tuple[CatalogEntry, ...]:
        self.calls += 1
        await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)
        return self.entries


class FakeLearningPaths:
    """Learning-path generator returning canned concepts."""

    def __init__(self, concepts: Optional[list[LearningConcept]] = None) -> None:
        self.concepts = concepts or []
        self.goals: list[str] = []
        self.error: Optional[Exception] = None
        self.delay = 0.0

    async def generate(self, goal: str) -> list[LearningConcept]:
        self.goals.append(goal)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.concepts


@pytest.fixture
def bigquery_catalog() -> tuple[CatalogEntry, ...]:
    return (
        make_entry("BigQuery Basics", "Lab"),
        make_entry("BigQuery Advanced", "Lab"),
        make_entry("Intro to GCP", "Course"),
        make_entry("Cloud Run 101", "Lab"),
    )


@pytest.fixture
def concepts() -> list[LearningConcept]:
    return [
        LearningConcept(
            title="SQL fundamentals",
            effortPercentage=20,
            impactPercentage=60,
            timeToLearn="2 weeks",
        ),
        LearningConcept(
            title="Partitioned tables",
            effortPercentage=10,
            impactPercentage=25,
            timeToLearn="3 days",
        ),
    ]
