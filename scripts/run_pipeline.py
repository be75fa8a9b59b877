"""Run the ingestion pipeline for one media item and print the outcome.

Usage:
    python scripts/run_pipeline.py --project <project-id> --media <locator> [--language en]
    python scripts/run_pipeline.py ... --subtitles vtt > out.vtt

Uses the same configuration (.env) as the API; missing credentials select
placeholder output for that stage. The run record goes to stderr, subtitles
(if requested) to stdout.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import settings  # noqa: E402
from src.ingestion.storage import PersistenceGateway  # noqa: E402
from src.logging_config import configure_logging  # noqa: E402
from src.pipeline.models import ContentAnalysis, Stage, Transcript  # noqa: E402
from src.pipeline.service import build_persistence_gateway, build_pipeline_service  # noqa: E402
from src.pipeline.subtitles import format_subtitles  # noqa: E402


class CapturingGateway:
    """Forward saves to the configured gateway and keep the last transcript."""

    def __init__(self, inner: PersistenceGateway) -> None:
        self._inner = inner
        self.transcript: Transcript | None = None

    async def save(
        self, project_id: str, transcript: Transcript, analysis: ContentAnalysis | None
    ) -> None:
        await self._inner.save(project_id, transcript, analysis)
        self.transcript = transcript


async def _run(args: argparse.Namespace) -> int:
    gateway = CapturingGateway(build_persistence_gateway(settings))
    service = build_pipeline_service(settings, persistence=gateway)

    run_id = await service.start_pipeline(args.project, args.media, args.language)
    run = await service.wait(run_id)
    print(json.dumps(run.to_dict(), indent=2), file=sys.stderr)

    if args.subtitles and gateway.transcript is not None:
        print(format_subtitles(gateway.transcript.segments, args.subtitles))
    return 0 if run.stage is Stage.COMPLETED else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the media ingestion pipeline once.")
    parser.add_argument("--project", required=True, help="Project id the results belong to")
    parser.add_argument("--media", required=True, help="Storage path or URL of the media")
    parser.add_argument("--language", default=None, help="Language hint, e.g. 'en'")
    parser.add_argument("--subtitles", choices=["srt", "vtt"], default=None)
    args = parser.parse_args()

    configure_logging(settings.log_level)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
