from typing import List
import argparse
import asyncio
import logging

from social.graze.tandem.app.cli import configure_logging
from social.graze.tandem.app.config import Settings, create_http_session
from social.graze.tandem.errors import TandemError
from social.graze.tandem.resolve.handle import resolve_subject

logger = logging.getLogger(__name__)


async def realMain() -> None:
    settings = Settings()

    parser = argparse.ArgumentParser(prog="resolve", description="Resolve handles")
    parser.add_argument("subject", nargs="+", help="The subject(s) to resolve.")
    parser.add_argument(
        "--plc-hostname",
        default=settings.plc_hostname,
        help="The PLC hostname to use for resolving did-method-plc DIDs.",
    )

    args = vars(parser.parse_args())

    subjects: List[str] = args.get("subject", [])

    async with create_http_session(settings) as session:
        for subject in subjects:
            try:
                resolved_identity = await resolve_subject(
                    session,
                    args.get("plc_hostname"),
                    subject,
                    max_iterations=settings.max_resolution_depth,
                    well_known_timeout=settings.well_known_timeout,
                )
                print(
                    f"{subject}: {resolved_identity.did} ({resolved_identity.pds}) "
                    f"known as {' '.join(resolved_identity.handles)}"
                )
            except TandemError:
                logger.exception("Exception resolving subject %s", subject)


def main() -> None:
    configure_logging()
    asyncio.run(realMain())


if __name__ == "__main__":
    main()
