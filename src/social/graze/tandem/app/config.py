"""
Configuration Module for tandem

Settings are loaded from environment variables through Pydantic settings, with
defaults that talk to the public PLC directory. Command line flags override a
subset of them per invocation.

Key configuration areas include:
- PLC directory selection
- Network timeouts
- Resolution bounds
- Debugging and error reporting
"""

import logging
from typing import Optional

import aiohttp
import sentry_sdk
from aiohttp import ClientSession
from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Settings for tandem commands.

    Environment variables are mapped to settings fields automatically. For
    example, ``PLC_HOSTNAME=plc.example.com`` points every directory call at a
    private directory.
    """

    debug: bool = False
    """
    Enable debug mode, which logs every outgoing HTTP request.
    Set with DEBUG=true environment variable.
    """

    plc_hostname: str = "plc.directory"
    """
    Hostname for the PLC directory service for DID resolution and operation submission.
    Set with PLC_HOSTNAME environment variable.
    """

    http_timeout: float = Field(default=30.0, gt=0)
    """
    Total timeout in seconds for directory and PDS requests.
    Set with HTTP_TIMEOUT environment variable.
    """

    well_known_timeout: float = Field(default=10.0, gt=0)
    """
    Total timeout in seconds for https://{handle}/.well-known/atproto-did lookups.
    Set with WELL_KNOWN_TIMEOUT environment variable.
    """

    max_resolution_depth: int = Field(default=10, ge=1)
    """
    Maximum number of iterations handle resolution may take before failing.
    Set with MAX_RESOLUTION_DEPTH environment variable.
    """

    verify_chain: bool = True
    """
    Recompute CIDs and check prev links of the audit log before building an operation.
    Set with VERIFY_CHAIN environment variable.
    """

    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """


def configure_sentry(settings: Settings) -> None:
    if settings.sentry_dsn:
        sentry_sdk.init(dsn=settings.sentry_dsn)


def create_http_session(settings: Settings) -> ClientSession:
    """Create the shared client session for a command.

    The session carries the configured total timeout; individual calls such as
    the well-known lookup may use a shorter one.
    """
    trace_config = aiohttp.TraceConfig()

    if settings.debug:

        async def on_request_start(
            session, trace_config_ctx, params: aiohttp.TraceRequestStartParams
        ):
            logging.info("Starting request: %s", params)

        async def on_request_end(session, trace_config_ctx, params):
            logging.info("Ending request: %s", params)

        trace_config.on_request_start.append(on_request_start)
        trace_config.on_request_end.append(on_request_end)

    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=settings.http_timeout),
        trace_configs=[trace_config],
    )
