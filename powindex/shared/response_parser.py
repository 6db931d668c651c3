# powindex/shared/response_parser.py
"""
Fuzzy parser for classifier responses.

Models wrap their JSON in prose and code fences, drop fields, and return
numbers as strings. Parsing tries strict JSON first, then a cleaned variant,
and fills every missing numeric field with a default and every missing
boolean with False.
"""

import json
import re
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from powindex.core.errors import ClassifierFormatError
from powindex.core.models import (
    SKILL_CATEGORIES,
    ContributionImpact,
    Evidence,
    QualityIndicators,
    SkillExtraction,
    SkillScore,
)

logger = logging.getLogger(__name__)

CODE_FENCE_PATTERN = re.compile(r"```[a-zA-Z0-9_-]*\s*(.*?)\s*```", re.DOTALL)

CATEGORY_KEYWORDS = [
    ("backend", "backend_engineering"),
    ("frontend", "frontend_engineering"),
    ("devops", "devops_infrastructure"),
    ("infra", "devops_infrastructure"),
    ("system", "systems_architecture"),
    ("architect", "systems_architecture"),
]

TRUE_STRINGS = {"true", "yes", "y", "1"}


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text unchanged."""
    if not text:
        return ""
    match = CODE_FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    return text.strip().strip('`').strip()


def coerce_score(value: Any, default: float) -> float:
    """Clamp a 0-100 score; anything non-numeric falls back to ``default``."""
    if isinstance(value, bool):
        return default
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score != score:  # NaN
        return default
    return max(0.0, min(100.0, score))


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return False


def category_key(raw: str) -> Optional[str]:
    """Map a model-provided category label onto one of the fixed category keys."""
    normalized = re.sub(r'[^a-z]+', '_', str(raw).lower()).strip('_')
    if normalized in SKILL_CATEGORIES:
        return normalized
    for keyword, key in CATEGORY_KEYWORDS:
        if keyword in normalized:
            return key
    return None


class ClassifierResponseParser:
    """
    Parses skill-extraction and impact-analysis responses.
    """

    def extract_json(self, response: str) -> Any:
        """
        Locate and decode the JSON payload of a response.

        Raises:
            ClassifierFormatError: when no strategy yields valid JSON
        """
        text = strip_code_fences(response)
        if not text:
            raise ClassifierFormatError("Empty classifier response")

        for strategy in (self._try_json_parsing, self._try_embedded_json_parsing,
                         self._try_cleaned_json_parsing):
            parsed, method = strategy(text)
            if parsed is not None:
                logger.debug(f"Parsed classifier response using {method}")
                return parsed

        raise ClassifierFormatError(f"No JSON found in classifier response: {text[:120]!r}")

    def _try_json_parsing(self, text: str) -> Tuple[Optional[Any], str]:
        try:
            return json.loads(text), "perfect_json"
        except ValueError:
            return None, ""

    def _try_embedded_json_parsing(self, text: str) -> Tuple[Optional[Any], str]:
        """JSON surrounded by prose: take the outermost array or object."""
        for json_str in self._candidate_blocks(text):
            try:
                return json.loads(json_str), "embedded_json"
            except ValueError:
                continue
        return None, ""

    def _try_cleaned_json_parsing(self, text: str) -> Tuple[Optional[Any], str]:
        """Try to parse after cleaning common JSON issues."""
        for json_str in self._candidate_blocks(text):
            # Remove comments
            json_str = re.sub(r'//[^\n]*', '', json_str)
            json_str = re.sub(r'/\*.*?\*/', '', json_str, flags=re.DOTALL)
            # Remove trailing commas
            json_str = re.sub(r',(\s*[}\]])', r'\1', json_str)
            # Fix unquoted keys
            json_str = re.sub(r'([{,]\s*)([A-Za-z_]\w*)\s*:', r'\1"\2":', json_str)
            # Fix single quotes
            if '"' not in json_str:
                json_str = json_str.replace("'", '"')
            try:
                return json.loads(json_str), "cleaned_json"
            except ValueError as e:
                logger.debug(f"Cleaned JSON parsing error: {e}")
        return None, ""

    @staticmethod
    def _candidate_blocks(text: str) -> List[str]:
        blocks = []
        for opener, closer in (('[', ']'), ('{', '}')):
            start = text.find(opener)
            end = text.rfind(closer)
            if start != -1 and end > start:
                blocks.append((start, text[start:end + 1]))
        # whichever structure opens first is the outer one
        return [block for _, block in sorted(blocks)]

    # ------------------------------------------------------------------ skills

    def parse_skill_extraction(self, response: str) -> SkillExtraction:
        """
        Parse a skill-extraction response.

        Categories the model omitted are filled with zero scores. A response
        that names no recognizable category at all is a format error.
        """
        data = self.extract_json(response)
        if not isinstance(data, dict):
            raise ClassifierFormatError("Skill extraction response is not a JSON object")

        categories = self._collect_categories(data)
        if not categories:
            for nested_key in ("skills", "categories", "skill_scores"):
                nested = data.get(nested_key)
                if isinstance(nested, dict):
                    categories = self._collect_categories(nested)
                    if categories:
                        break

        if not categories:
            raise ClassifierFormatError("Skill extraction response has no known categories")

        extraction = SkillExtraction.default()
        extraction.categories.update(categories)
        return extraction

    def _collect_categories(self, data: Dict[str, Any]) -> Dict[str, SkillScore]:
        categories = {}
        for raw_key, value in data.items():
            key = category_key(raw_key)
            if key is None or key in categories:
                continue
            if isinstance(value, dict):
                categories[key] = SkillScore(
                    score=coerce_score(value.get('score'), 0.0),
                    confidence=coerce_score(value.get('confidence'), 0.0),
                    evidence=self._parse_evidence(value.get('evidence')),
                )
            elif isinstance(value, (int, float, str)) and not isinstance(value, bool):
                categories[key] = SkillScore(score=coerce_score(value, 0.0))
        return categories

    @staticmethod
    def _parse_evidence(raw: Any) -> List[Evidence]:
        if not isinstance(raw, list):
            return []
        evidence = []
        for item in raw:
            if isinstance(item, dict):
                evidence.append(Evidence(
                    artifact_type=str(item.get('type') or item.get('artifact_type') or 'unknown'),
                    artifact_id=str(item.get('id') or item.get('artifact_id') or ''),
                    reason=str(item.get('reason') or ''),
                    name=item.get('name'),
                ))
            elif isinstance(item, str):
                evidence.append(Evidence(artifact_type='unknown', artifact_id='', reason=item))
        return evidence

    # ------------------------------------------------------------------ impact

    def impact_from_dict(self, data: Dict[str, Any]) -> ContributionImpact:
        """Build an impact record, defaulting every missing field."""
        indicators = data.get('quality_indicators')
        if not isinstance(indicators, dict):
            indicators = {}
        neutral = ContributionImpact.neutral()
        return ContributionImpact(
            impact_score=coerce_score(data.get('impact_score'), neutral.impact_score),
            complexity_delta=coerce_score(data.get('complexity_delta'), neutral.complexity_delta),
            quality_indicators=QualityIndicators(
                has_tests=coerce_bool(indicators.get('has_tests', data.get('has_tests'))),
                reviewed=coerce_bool(indicators.get('reviewed', data.get('reviewed'))),
                refactored=coerce_bool(indicators.get('refactored', data.get('refactored'))),
                documented=coerce_bool(indicators.get('documented', data.get('documented'))),
            ),
        )

    def parse_impact(self, response: str) -> ContributionImpact:
        data = self.extract_json(response)
        if isinstance(data, list) and data and isinstance(data[0], dict):
            data = data[0]
        if not isinstance(data, dict):
            raise ClassifierFormatError("Impact response is not a JSON object")
        return self.impact_from_dict(data)

    def parse_impact_batch(self, response: str,
                           artifact_ids: Iterable[str]) -> Dict[str, ContributionImpact]:
        """
        Parse a batched impact response into a per-artifact map.

        Accepts a JSON array of objects carrying an ``id``, an object wrapping such
        an array, or an object keyed by artifact id. Artifacts missing from the
        response, or whose entry cannot be read, receive neutral defaults.

        Raises:
            ClassifierFormatError: when the response holds no JSON at all
        """
        artifact_ids = list(artifact_ids)
        data = self.extract_json(response)
        entries = self._batch_entries(data)

        results: Dict[str, ContributionImpact] = {}
        missing = 0
        for artifact_id in artifact_ids:
            entry = entries.get(artifact_id)
            if isinstance(entry, dict):
                results[artifact_id] = self.impact_from_dict(entry)
            else:
                missing += 1
                results[artifact_id] = ContributionImpact.neutral()

        if missing:
            logger.warning(f"Batch impact response missing {missing}/{len(artifact_ids)} artifacts, using neutral defaults")
        return results

    @staticmethod
    def _batch_entries(data: Any) -> Dict[str, Any]:
        if isinstance(data, dict):
            for wrapper in ("results", "impacts", "artifacts", "contributions"):
                if isinstance(data.get(wrapper), list):
                    data = data[wrapper]
                    break
            else:
                return {str(k): v for k, v in data.items()}

        if not isinstance(data, list):
            return {}

        entries = {}
        for item in data:
            if isinstance(item, dict):
                artifact_id = item.get('id') or item.get('artifact_id')
                if artifact_id is not None:
                    entries[str(artifact_id)] = item
        return entries
