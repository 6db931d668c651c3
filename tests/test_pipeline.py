"""
End-to-end pipeline tests with fake GitHub and classifier backends.
"""

import pytest

from powindex.core.errors import AuthenticationError, ConfigurationError, ValidationError
from powindex.core.pipeline import ProfilePipeline
from powindex.shared.profile_store import InMemoryProfileStore
from powindex.shared.progress_tracker import InMemoryProgressStore
from powindex.tasks.classification.classifier_gateway import ClassifierGateway
from powindex.tasks.ingestion.artifact_ingestion import ArtifactIngestionService
from factories import (
    SUBJECT,
    FakeGitHubClient,
    RoutingProvider,
    make_commit,
    make_pr,
    make_repo,
    skills_json,
)


def full_mode_client(**overrides):
    defaults = dict(
        repos=[make_repo(1, "api"), make_repo(2, "old-fork", fork=True)],
        commits={"alice/api": [make_commit(f"c{i}", message=f"api change {i}") for i in range(4)]},
        pull_requests={"alice/api": [make_pr(10, head_ref="api-retries")]},
    )
    defaults.update(overrides)
    return FakeGitHubClient(**defaults)


def batch_impacts_response():
    ids = [f"commit-c{i}" for i in range(4)] + ["pr-10"]
    return "[" + ",".join(
        f'{{"id": "{artifact_id}", "impact_score": 75, "complexity_delta": 55}}' for artifact_id in ids
    ) + "]"


@pytest.fixture
def progress():
    return InMemoryProgressStore()


@pytest.fixture
def store():
    return InMemoryProfileStore()


def build_pipeline(client, provider, github_config, classifier_config, clock, store, progress):
    gateway = ClassifierGateway(classifier_config, provider=provider, environ={})
    ingestion = ArtifactIngestionService(client, github_config, clock=clock)
    return ProfilePipeline(ingestion, gateway, store=store, progress=progress, clock=clock)


class TestProfilePipeline:

    def test_full_mode_run(self, github_config, classifier_config, clock, store, progress):
        provider = RoutingProvider(skills_json(70, 80), batch_impacts_response())
        pipeline = build_pipeline(full_mode_client(), provider, github_config, classifier_config,
                                  clock, store, progress)

        result = pipeline.run(SUBJECT, mode="full")

        summary = result.profile.artifact_summary
        assert summary.repos == 1
        assert summary.commits == 4
        assert summary.pull_requests == 1
        assert summary.merged_prs == 1
        assert len(result.skill_scores) == 4
        assert result.artifact_hash.startswith("0x")
        assert len(provider.prompts) == 2

    def test_progress_reaches_complete(self, github_config, classifier_config, clock, store, progress):
        provider = RoutingProvider(skills_json(), batch_impacts_response())
        pipeline = build_pipeline(full_mode_client(), provider, github_config, classifier_config,
                                  clock, store, progress)

        pipeline.run(SUBJECT, mode="full")

        state = progress.get_progress(SUBJECT)
        assert state.stage == "complete"
        assert state.percent == 100

    def test_results_persisted(self, github_config, classifier_config, clock, store, progress):
        provider = RoutingProvider(skills_json(), batch_impacts_response())
        pipeline = build_pipeline(full_mode_client(), provider, github_config, classifier_config,
                                  clock, store, progress)

        result = pipeline.run(SUBJECT, mode="full")

        stored = store.get_profile(SUBJECT)
        assert stored.profile == result.profile
        assert stored.artifact_count == len(result.artifacts)
        assert [a.key for a in store.get_artifacts(SUBJECT)] == [a.key for a in result.artifacts]

    def test_fast_mode_run(self, github_config, classifier_config, clock, store, progress):
        client = FakeGitHubClient(
            repos=[make_repo(1, "api")],
            events=[{
                "type": "PushEvent",
                "actor": {"login": SUBJECT},
                "repo": {"name": "alice/api"},
                "created_at": "2026-06-10T10:00:00Z",
                "payload": {"commits": [{"sha": "e1", "message": "api: tune", "author": {"name": SUBJECT}}]},
            }],
        )
        provider = RoutingProvider(skills_json(), '[{"id": "commit-e1", "impact_score": 60}]')
        pipeline = build_pipeline(client, provider, github_config, classifier_config, clock, store, progress)

        result = pipeline.run(SUBJECT, mode="fast")

        assert result.profile.artifact_summary.commits == 1
        assert result.profile.artifact_summary.repos == 1
        assert "user_events" in client.calls

    def test_missing_subject_rejected_before_network(self, github_config, classifier_config, clock,
                                                     store, progress):
        client = full_mode_client()
        pipeline = build_pipeline(client, RoutingProvider("{}", "[]"), github_config, classifier_config,
                                  clock, store, progress)

        with pytest.raises(ValidationError):
            pipeline.run("  ")
        assert client.calls == []

    def test_unknown_mode_rejected(self, github_config, classifier_config, clock, store, progress):
        pipeline = build_pipeline(full_mode_client(), RoutingProvider("{}", "[]"), github_config,
                                  classifier_config, clock, store, progress)
        with pytest.raises(ValidationError):
            pipeline.run(SUBJECT, mode="slow")

    def test_authentication_failure_marks_error(self, github_config, classifier_config, clock,
                                                store, progress):
        pipeline = build_pipeline(FakeGitHubClient(auth_fails=True), RoutingProvider("{}", "[]"),
                                  github_config, classifier_config, clock, store, progress)

        with pytest.raises(AuthenticationError):
            pipeline.run(SUBJECT, mode="full")

        assert progress.get_progress(SUBJECT).stage == "error"
        assert store.get_profile(SUBJECT) is None

    def test_missing_classifier_is_fatal(self, github_config, classifier_config, clock, store, progress):
        pipeline = build_pipeline(full_mode_client(), None, github_config, classifier_config,
                                  clock, store, progress)

        with pytest.raises(ConfigurationError):
            pipeline.run(SUBJECT, mode="full")

        assert progress.get_progress(SUBJECT).stage == "error"

    def test_classifier_garbage_degrades(self, github_config, classifier_config, clock, store, progress):
        provider = RoutingProvider("no json", "also no json")
        pipeline = build_pipeline(full_mode_client(), provider, github_config, classifier_config,
                                  clock, store, progress)

        result = pipeline.run(SUBJECT, mode="full")

        assert all(skill.confidence == 0 for skill in result.profile.skills)
        assert progress.get_progress(SUBJECT).stage == "complete"
