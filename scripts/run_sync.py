"""Run one offline step sync and print the report as JSON.

Meant to be invoked by an external scheduler (cron, Cloud Scheduler job, ...).
Exit status is 0 when the run completed, even if some users failed.
"""
import argparse
import json
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

from stepboard.config import GoogleOAuthConfig, SyncSettings
from stepboard.errors import ConfigurationError, StoreUnavailable
from stepboard.firebase_client import create_credential_store_from_env
from stepboard.logging_config import configure_logger
from stepboard.providers.google_oauth import GoogleOAuthClient
from stepboard.services.step_aggregator import StepAggregator
from stepboard.services.sync_orchestrator import BatchSyncOrchestrator, summarize


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync today's step counts for every stored user")
    parser.add_argument("--env-file", default=".env.local", help="Env file to load before running")
    parser.add_argument("--summary", action="store_true", help="Print one line per user instead of JSON")
    args = parser.parse_args()

    load_dotenv(args.env_file)
    logger = configure_logger("stepboard.sync")
    settings = SyncSettings.from_env()

    try:
        orchestrator = BatchSyncOrchestrator(
            store=create_credential_store_from_env(logger=logger),
            token_refresher=GoogleOAuthClient(GoogleOAuthConfig.from_env(), timeout=settings.http_timeout_seconds),
            aggregator=StepAggregator(logger=logger, timeout=settings.http_timeout_seconds),
            logger=logger,
            settings=settings,
        )
        outcome = orchestrator.run_sync()
    except ConfigurationError as exc:
        logger.error(f"[sync] configuration error: {exc}")
        return 2
    except StoreUnavailable as exc:
        logger.error(f"[sync] credential store unavailable: {exc}")
        return 3

    if args.summary:
        print(outcome.message())
        for line in summarize(outcome):
            print(line)
    else:
        report = {
            "message": outcome.message(),
            "results": outcome.results(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
