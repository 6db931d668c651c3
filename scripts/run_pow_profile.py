# scripts/run_pow_profile.py
"""
Command-line entry point for Proof-of-Work profile generation.
Runs the full pipeline for one GitHub user and prints the resulting profile.
"""

import sys
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from powindex.core.errors import AuthenticationError, ConfigurationError, ValidationError
from powindex.core.pipeline import ProfilePipeline
from powindex.core.settings import PowIndexSettings

logger = logging.getLogger(__name__)


def main():
    """Main entry point for profile generation."""
    import argparse

    parser = argparse.ArgumentParser(description='Generate a Proof-of-Work profile for a GitHub user')
    parser.add_argument('subject', help='GitHub login to profile')
    parser.add_argument('--mode', choices=['fast', 'full'], default='fast',
                        help='Ingestion mode: fast (event feed) or full (per-repository history)')
    parser.add_argument('--months-back', type=int, default=None,
                        help='Activity window in months (default: POWINDEX_MONTHS_BACK or 12)')
    parser.add_argument('--config', default=None,
                        help='YAML file merged over the packaged defaults')
    parser.add_argument('--output', default=None,
                        help='Write the profile JSON to this file')

    args = parser.parse_args()

    load_dotenv()

    # Set up logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        overrides = {'config_path': args.config} if args.config else {}
        settings = PowIndexSettings(**overrides)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading configuration: {e}")
        return 1

    logging.getLogger().setLevel(settings.log_level.upper())

    validation = settings.validate_environment()
    if not validation['valid']:
        print(f"Error: missing environment variables: {', '.join(validation['missing'])}")
        print("Set GITHUB_TOKEN and at least one classifier API key, e.g.:")
        print("export OPENAI_API_KEY='your-api-key-here'")
        return 1

    months_back = args.months_back or settings.months_back

    try:
        logger.info("=" * 60)
        logger.info(f"STARTING POW PROFILE PIPELINE FOR {args.subject}")
        logger.info("=" * 60)

        pipeline = ProfilePipeline.from_settings(settings)
        result = pipeline.run(args.subject, mode=args.mode, months_back=months_back)
        profile = result.profile

        # Print summary
        print("\n" + "=" * 60)
        print(f"PROOF-OF-WORK PROFILE: {result.subject}")
        print("=" * 60)
        print(f"Mode: {args.mode}, window: {months_back} months")
        print(f"Overall index: {profile.overall_index}")
        summary = profile.artifact_summary
        print(f"Artifacts: {summary.repos} repos, {summary.commits} commits, "
              f"{summary.pull_requests} PRs ({summary.merged_prs} merged)")

        print("\n" + "-" * 40)
        for skill in profile.skills:
            print(f"{skill.skill_name:<28} score {skill.score:>3}  "
                  f"top {skill.percentile}%  confidence {skill.confidence:.0f}")
        print("-" * 40)
        print(f"Artifact hash: {result.artifact_hash}")
        print(f"Processing time: {result.processing_time_ms:.0f}ms")

        if args.output:
            output_path = Path(args.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w', encoding='utf-8') as f:
                json.dump(result.to_dict(), f, indent=2)
            print(f"Profile saved to: {output_path}")

        print("=" * 60)
        return 0

    except (ValidationError, AuthenticationError, ConfigurationError) as e:
        print(f"Error: {e}")
        return 1

    except KeyboardInterrupt:
        print("\nProfile generation interrupted by user")
        return 1

    except Exception as e:
        logger.error(f"Error running profile pipeline: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    exit(main())
