#!/usr/bin/env python3
"""
Run one polling pass over the jobs in POLL_JOBS_JSON.
Each job's source ranges are hashed and re-imported only when the content changed
since the last recorded run (state kept in POLL_STATE_PATH).
Suited to a scheduled CI workflow instead of the long-running server.
"""

import sys
import traceback

from stuckup_dashboard.config import ConfigError, Settings, configure_logging
from stuckup_dashboard.poller import FAILED, UPDATED, GspreadRangeReader, JsonFileStateStore, Poller
from stuckup_dashboard.sheets import get_credentials, get_gspread_client, get_service


def main():
    """Main function to check for changes in the configured sources."""
    configure_logging()
    try:
        settings = Settings.from_env()
        if settings.poll_jobs_error:
            raise ConfigError(settings.poll_jobs_error)
        if not settings.poll_jobs:
            print("❌ POLL_JOBS_JSON environment variable not set or empty")
            sys.exit(1)

        credentials = get_credentials()
        poller = Poller(
            service=get_service(credentials),
            jobs=settings.poll_jobs,
            reader=GspreadRangeReader(get_gspread_client(credentials)),
            store=JsonFileStateStore(settings.poll_state_path),
            dashboard_config=settings.dashboard,
        )
        print(f"🔍 Checking {poller.count} job(s) for changes...")

        outcomes = poller.run_all()
        for job_key, outcome in outcomes.items():
            state = poller.state(job_key)
            print(f"  {job_key}: {outcome} (hash {state.last_hash or 'Never'})")

        updated = any(outcome == UPDATED for outcome in outcomes.values())
        print(f"NEEDS_UPDATE={'true' if updated else 'false'}")
        if any(outcome == FAILED for outcome in outcomes.values()):
            sys.exit(1)
        sys.exit(0)

    except ConfigError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Unexpected error: {e}")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
