# powindex/tasks/classification/classifier_gateway.py
"""
Skill/impact classifier gateway.

Wraps a remote, non-deterministic text classifier. Transport and format
failures never escape: skill extraction falls back to all-zero scores and
impact analysis falls back to neutral values per artifact. A missing provider
configuration is the one failure that does propagate, at first use.
"""

import time
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Mapping, Optional

from powindex.core.errors import (
    ClassifierFormatError,
    ClassifierTransportError,
    ConfigurationError,
)
from powindex.core.models import (
    Artifact,
    ContributionImpact,
    SkillExtraction,
    TimeWindow,
)
from powindex.shared.provider_engine import ClassifierProvider, select_provider
from powindex.shared.response_parser import ClassifierResponseParser
from powindex.tasks.classification.prompts import ClassifierPromptGenerator

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a technical analyst that extracts verifiable proof-of-work signals "
    "from developer artifacts. Always return valid JSON."
)


class ClassifierGateway:
    """
    Skill extraction and contribution impact analysis over one selected provider.
    """

    def __init__(self, classifier_config, provider: Optional[ClassifierProvider] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """
        Initialize the gateway.

        The provider is chosen here and kept for the lifetime of the instance.
        Construction succeeds even when no credentials exist.

        Args:
            classifier_config: ``classifier`` configuration section
            provider: Explicit provider (skips selection)
            environ: Environment mapping used for provider selection
        """
        self.config = classifier_config
        self.temperature = float(classifier_config.get('temperature', 0.3))
        self.max_concurrent_requests = max(1, int(classifier_config.get('max_concurrent_requests', 4)))
        self.system_prompt = classifier_config.get('system_prompt') or DEFAULT_SYSTEM_PROMPT

        self._provider = provider if provider is not None else select_provider(classifier_config, environ)
        self.prompt_generator = ClassifierPromptGenerator()
        self.response_parser = ClassifierResponseParser()

    @property
    def provider(self) -> ClassifierProvider:
        if self._provider is None:
            raise ConfigurationError(
                "No classifier provider configured; set one of the provider API key environment variables"
            )
        return self._provider

    @property
    def is_configured(self) -> bool:
        return self._provider is not None

    def _complete(self, user_prompt: str) -> str:
        return self.provider.complete(self.system_prompt, user_prompt, self.temperature)

    def extract_skills(self, subject: str, artifacts: List[Artifact],
                       time_window: TimeWindow) -> SkillExtraction:
        """
        Request a per-category skill classification for the subject.

        Args:
            subject: Developer login
            artifacts: Normalized artifacts of the run
            time_window: Window the artifacts were collected over

        Returns:
            SkillExtraction; all-zero when the classifier fails or answers garbage
        """
        prompt = self.prompt_generator.create_skill_extraction_prompt(subject, artifacts, time_window)
        provider = self.provider

        start_time = time.time()
        try:
            response = self._complete(prompt)
            extraction = self.response_parser.parse_skill_extraction(response)
        except (ClassifierTransportError, ClassifierFormatError) as e:
            logger.error(f"Skill extraction failed for {subject}, using zero scores: {e}")
            return SkillExtraction.default()

        processing_time = (time.time() - start_time) * 1000
        logger.info(f"Skill extraction for {subject} via {provider.name} completed in {processing_time:.1f}ms")
        return extraction

    def analyze_impact(self, artifact: Artifact) -> ContributionImpact:
        """Single-artifact impact analysis; neutral values on any failure."""
        try:
            response = self._complete(self.prompt_generator.create_impact_prompt(artifact))
            return self.response_parser.parse_impact(response)
        except (ClassifierTransportError, ClassifierFormatError) as e:
            logger.warning(f"Impact analysis failed for {artifact.id}, using neutral values: {e}")
            return ContributionImpact.neutral()

    def analyze_impact_batch(self, artifacts: List[Artifact],
                             subject: Optional[str] = None) -> Dict[str, ContributionImpact]:
        """
        Impact analysis for every commit/PR artifact.

        Providers with large-context support get a single request; the others
        get one request per artifact, fanned out up to ``max_concurrent_requests``.

        Returns:
            Map of artifact id to impact
        """
        contributions = [a for a in artifacts if a.is_contribution]
        if not contributions:
            return {}

        provider = self.provider
        subject = subject or self._infer_subject(contributions)

        if provider.supports_batch:
            return self._analyze_batched(contributions, subject)

        logger.info(f"Provider {provider.name} has no batch support, analyzing {len(contributions)} artifacts individually")
        workers = min(self.max_concurrent_requests, len(contributions))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            impacts = list(executor.map(self.analyze_impact, contributions))
        return {artifact.id: impact for artifact, impact in zip(contributions, impacts)}

    def _analyze_batched(self, contributions: List[Artifact], subject: str) -> Dict[str, ContributionImpact]:
        artifact_ids = [a.id for a in contributions]
        prompt = self.prompt_generator.create_batch_impact_prompt(subject, contributions)

        start_time = time.time()
        try:
            response = self._complete(prompt)
            impacts = self.response_parser.parse_impact_batch(response, artifact_ids)
        except (ClassifierTransportError, ClassifierFormatError) as e:
            logger.error(f"Batch impact analysis failed, using neutral values for {len(artifact_ids)} artifacts: {e}")
            return {artifact_id: ContributionImpact.neutral() for artifact_id in artifact_ids}

        processing_time = (time.time() - start_time) * 1000
        logger.info(f"Batch impact analysis of {len(artifact_ids)} artifacts completed in {processing_time:.1f}ms")
        return impacts

    @staticmethod
    def _infer_subject(contributions: List[Artifact]) -> str:
        for artifact in contributions:
            login = (artifact.payload.get('author') or artifact.payload.get('user') or {}).get('login')
            if login:
                return login
        return "the developer"
