"""
Tests for profile persistence and the artifact snapshot helpers.
"""

import hashlib
from datetime import timedelta

import pytest

from powindex.core.errors import ValidationError
from powindex.core.models import ArtifactSummary, PoWProfile, SKILL_CATEGORIES, SkillPoWScore
from powindex.shared.profile_store import InMemoryProfileStore, JsonFileProfileStore
from powindex.shared.snapshot import extract_skill_scores, generate_artifact_hash
from factories import NOW, commit_artifact, pr_artifact, repo_artifact


class MutableClock:
    def __init__(self):
        self.now = NOW

    def __call__(self):
        return self.now


def make_profile(scores=(70, 60, 50, 40)):
    skills = [
        SkillPoWScore(skill_name=name, score=score, percentile=30, confidence=80.0, artifact_count=3)
        for name, score in zip(SKILL_CATEGORIES.values(), scores)
    ]
    return PoWProfile(
        skills=skills,
        overall_index=round(sum(scores) / len(scores)),
        artifact_summary=ArtifactSummary(repos=1, commits=1, pull_requests=1, merged_prs=1),
    )


@pytest.fixture
def artifacts():
    return [repo_artifact(1, "api"), commit_artifact("a1"), pr_artifact(2)]


@pytest.fixture(params=["memory", "json"])
def store_and_clock(request, tmp_path):
    clock = MutableClock()
    if request.param == "memory":
        return InMemoryProfileStore(clock=clock), clock
    return JsonFileProfileStore(str(tmp_path / "profiles"), clock=clock), clock


class TestProfileStore:

    def test_missing_subject(self, store_and_clock):
        store, _ = store_and_clock
        assert store.get_profile("alice") is None
        assert store.get_artifacts("alice") == []

    def test_artifacts_roundtrip(self, store_and_clock, artifacts):
        store, _ = store_and_clock
        store.save_artifacts("alice", artifacts)

        loaded = store.get_artifacts("alice")

        assert [a.key for a in loaded] == [a.key for a in artifacts]
        assert loaded[1].repository == artifacts[1].repository
        assert loaded[1].timestamp == artifacts[1].timestamp

    def test_save_artifacts_replaces_set(self, store_and_clock, artifacts):
        store, _ = store_and_clock
        store.save_artifacts("alice", artifacts)
        store.save_artifacts("alice", artifacts[:1])
        assert len(store.get_artifacts("alice")) == 1

    def test_profile_roundtrip(self, store_and_clock):
        store, _ = store_and_clock
        profile = make_profile()

        store.save_profile("alice", profile, 3)
        stored = store.get_profile("alice")

        assert stored.profile == profile
        assert stored.artifact_count == 3
        assert stored.updated_at == NOW

    def test_should_refresh(self, store_and_clock):
        store, clock = store_and_clock
        assert store.should_refresh_profile("alice") is True

        store.save_profile("alice", make_profile(), 3)
        clock.now = NOW + timedelta(hours=23)
        assert store.should_refresh_profile("alice") is False

        clock.now = NOW + timedelta(hours=25)
        assert store.should_refresh_profile("alice") is True
        assert store.should_refresh_profile("alice", max_age_hours=48) is False


class TestJsonFileStore:

    def test_subjects_stored_in_separate_directories(self, tmp_path):
        store = JsonFileProfileStore(str(tmp_path))
        store.save_profile("alice", make_profile(), 1)
        store.save_profile("Bob/Evil", make_profile(), 1)

        assert (tmp_path / "alice" / "profile.json").exists()
        assert (tmp_path / "bob-evil" / "profile.json").exists()
        assert not list(tmp_path.rglob("*.tmp"))


class TestSnapshot:

    def test_hash_is_order_independent(self, artifacts):
        assert generate_artifact_hash(artifacts) == generate_artifact_hash(list(reversed(artifacts)))

    def test_hash_changes_with_content(self, artifacts):
        assert generate_artifact_hash(artifacts) != generate_artifact_hash(artifacts[:2])

    def test_hash_format(self, artifacts):
        digest = generate_artifact_hash(artifacts)
        assert digest.startswith("0x")
        assert len(digest) == 66

    def test_hash_is_sha256_of_canonical_json(self):
        assert generate_artifact_hash([]) == "0x" + hashlib.sha256(b"[]").hexdigest()

    def test_skill_scores_in_category_order(self):
        assert extract_skill_scores(make_profile((90, 10, 20, 30))) == [90, 10, 20, 30]


class TestSubjectKeys:

    def test_subject_lookup_ignores_case(self, store_and_clock):
        store, _ = store_and_clock
        store.save_profile("Alice", make_profile(), 1)
        assert store.get_profile("alice") is not None

    @pytest.mark.parametrize("subject", ["..", ".", ".hidden", ""])
    def test_dot_subjects_rejected(self, tmp_path, subject):
        root = tmp_path / "profiles"
        store = JsonFileProfileStore(str(root))

        with pytest.raises(ValidationError):
            store.save_artifacts(subject, [])
        with pytest.raises(ValidationError):
            store.get_profile(subject)
        assert not (tmp_path / "artifacts.json").exists()
        assert list(root.iterdir()) == []

    def test_reads_do_not_create_directories(self, tmp_path):
        store = JsonFileProfileStore(str(tmp_path))

        assert store.get_profile("never-seen") is None
        assert store.get_artifacts("never-seen") == []
        assert not (tmp_path / "never-seen").exists()
