# powindex/shared/snapshot.py
"""
Content hash and score list handed to downstream anchoring consumers.
"""

import json
import hashlib
from typing import List

from powindex.core.models import Artifact, PoWProfile


def generate_artifact_hash(artifacts: List[Artifact]) -> str:
    """
    Deterministic SHA-256 over the identifying fields of an artifact set.

    Input order does not matter; payloads are excluded. The digest is not
    byte-compatible with keccak256 anchoring hashes, so a registry contract that
    recomputes keccak256 over the same artifacts will not match it.

    Returns:
        Hex digest prefixed with ``0x``
    """
    canonical = sorted(
        (
            {
                "id": artifact.id,
                "kind": artifact.kind.value,
                "timestamp": artifact.timestamp.isoformat(),
                "repository": artifact.repository.full_name if artifact.repository else None,
            }
            for artifact in artifacts
        ),
        key=lambda item: (item["id"], item["kind"]),
    )
    serialized = json.dumps(canonical, sort_keys=True, separators=(',', ':'))
    return "0x" + hashlib.sha256(serialized.encode('utf-8')).hexdigest()


def extract_skill_scores(profile: PoWProfile) -> List[int]:
    """Per-category scores in category order."""
    return [int(round(skill.score)) for skill in profile.skills]
