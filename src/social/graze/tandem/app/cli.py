import argparse
import asyncio
import getpass
import json
import logging
import os
import sys
from logging.config import dictConfig
from typing import Any, Dict, Optional

from social.graze.tandem.actions import (
    ActionContext,
    ActionKind,
    ActionResult,
    Step,
    get_action,
)
from social.graze.tandem.app.config import (
    Settings,
    configure_sentry,
    create_http_session,
)
from social.graze.tandem.atproto.crypto import (
    Curve,
    did_key_from_secret,
    generate_key,
    to_did_key,
)
from social.graze.tandem.errors import TandemError
from social.graze.tandem.resolve.handle import resolve_subject

logger = logging.getLogger(__name__)

CURVES = {"p256": Curve.p256, "k256": Curve.k256}


def configure_logging():
    logging_config_file = os.getenv("LOGGING_CONFIG_FILE", "")

    if len(logging_config_file) > 0:
        with open(logging_config_file) as fl:
            dictConfig(json.load(fl))
        return

    logging.basicConfig()
    logging.getLogger().setLevel(logging.INFO)


def render_step(step: Step) -> None:
    if step.sensitive:
        print(step.message)
        print(step.detail)
        return
    print(f"✔ {step.message}")
    if step.detail is None:
        return
    if isinstance(step.detail, str):
        print(step.detail)
    else:
        print(json.dumps(step.detail, indent=2, default=str))


def read_secret_key(path: Optional[str]) -> str:
    """Read a private JWK from a file, stdin (``-``) or an unechoed prompt."""
    if path == "-":
        return sys.stdin.read().strip()
    if path is not None:
        with open(path) as fd:
            return fd.read().strip()
    return getpass.getpass("JWK: ").strip()


async def prompt_confirmation_code() -> str:
    return await asyncio.to_thread(input, "Confirmation code: ")


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tandem", description="Manage DID-PLC identities"
    )
    parser.add_argument(
        "--plc-hostname",
        default=settings.plc_hostname,
        help="The PLC directory hostname to resolve DIDs and submit operations to.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve = subparsers.add_parser("resolve", help="Resolve and verify a handle or DID")
    resolve.add_argument("subject", help="The handle or DID to resolve.")

    gen_key = subparsers.add_parser("gen-key", help="Generate a rotation key")
    gen_key.add_argument("--curve", choices=sorted(CURVES), default="p256")

    derive_key = subparsers.add_parser(
        "derive-key", help="Show the did:key of a private JWK"
    )
    derive_key.add_argument("--jwk-file", help="Path to the private JWK, or - for stdin.")

    append_handle = subparsers.add_parser(
        "append-handle", help="Append a handle to a DID document"
    )
    append_handle.add_argument("did", help="The DID to update.")
    append_handle.add_argument("handle", help="The handle to add.")
    append_handle.add_argument("--jwk-file", help="Path to the private JWK, or - for stdin.")
    append_handle.add_argument(
        "--no-submit",
        action="store_true",
        help="Print the signed operation without submitting it.",
    )

    install_key = subparsers.add_parser(
        "install-key", help="Generate a rotation key and install it through the PDS"
    )
    install_key.add_argument("handle", help="The handle of the account.")
    install_key.add_argument("--curve", choices=sorted(CURVES), default="p256")
    install_key.add_argument("--position", choices=["first", "last"], default="first")

    create_account = subparsers.add_parser(
        "create-account", help="Create an account on a PDS"
    )
    create_account.add_argument("pds_hostname", help="The hostname of the PDS.")
    create_account.add_argument("email", help="The account email address.")
    create_account.add_argument("--handle", help="The handle to register.")
    create_account.add_argument("--invite-code", help="Invite code, if the PDS requires one.")
    create_account.add_argument("--did", help="Create the account for an existing DID.")
    create_account.add_argument(
        "--jwk-file", help="Use this private JWK as the recovery key instead of generating one."
    )
    create_account.add_argument("--curve", choices=sorted(CURVES), default="p256")

    migrate = subparsers.add_parser("migrate", help="Migrate a DID to another PDS")
    migrate.add_argument("did", help="The DID to migrate.")
    migrate.add_argument("destination_pds", help="The destination PDS.")
    migrate.add_argument("--jwk-file", help="Path to the private JWK, or - for stdin.")
    migrate.add_argument(
        "--no-submit",
        action="store_true",
        help="Print the signed operation without submitting it.",
    )

    return parser


def action_inputs(command: str, args: Dict[str, Any]) -> Dict[str, Any]:
    if command == "append-handle":
        return {
            "did": args["did"],
            "handle": args["handle"],
            "secret_key": read_secret_key(args.get("jwk_file")),
            "submit": not args.get("no_submit", False),
        }
    elif command == "install-key":
        return {
            "handle": args["handle"],
            "password": getpass.getpass("Password: "),
            "curve": CURVES[args["curve"]],
            "position": args["position"],
        }
    elif command == "create-account":
        jwk_file = args.get("jwk_file")
        return {
            "pds_hostname": args["pds_hostname"],
            "email": args["email"],
            "password": getpass.getpass("Password: "),
            "handle": args.get("handle"),
            "invite_code": args.get("invite_code"),
            "existing_did": args.get("did"),
            "secret_key": read_secret_key(jwk_file) if jwk_file else None,
            "curve": CURVES[args["curve"]],
        }
    elif command == "migrate":
        return {
            "did": args["did"],
            "secret_key": read_secret_key(args.get("jwk_file")),
            "destination_pds": args["destination_pds"],
            "destination_password": getpass.getpass("Destination password: "),
            "submit": not args.get("no_submit", False),
        }
    raise ValueError(f"unknown command {command}")


ACTION_COMMANDS = {
    "append-handle": ActionKind.append_handle,
    "install-key": ActionKind.install_key,
    "create-account": ActionKind.create_account,
    "migrate": ActionKind.migrate,
}


async def realMain(argv: Optional[list] = None) -> int:
    settings = Settings()
    parser = build_parser(settings)
    args = vars(parser.parse_args(argv))
    command: str = args["command"]
    settings = settings.model_copy(update={"plc_hostname": args["plc_hostname"]})

    if command == "gen-key":
        secret_key, public_key = generate_key(CURVES[args["curve"]])
        print("Important! Securely store the following private key.")
        print(secret_key)
        print(to_did_key(public_key))
        return 0

    if command == "derive-key":
        print(did_key_from_secret(read_secret_key(args.get("jwk_file"))))
        return 0

    async with create_http_session(settings) as session:
        if command == "resolve":
            identity = await resolve_subject(
                session,
                settings.plc_hostname,
                args["subject"],
                max_iterations=settings.max_resolution_depth,
                well_known_timeout=settings.well_known_timeout,
            )
            print(json.dumps(identity.model_dump(), indent=2))
            return 0

        print(
            "Warning! This tool will perform potentially dangerous operations on your behalf. "
            "Do not proceed unless you know what you are doing."
        )

        action = get_action(ACTION_COMMANDS[command], **action_inputs(command, args))
        context = ActionContext(
            session=session,
            settings=settings,
            report=render_step,
            confirmation_code=prompt_confirmation_code,
        )
        result: ActionResult = await action.execute(context)
        if not result.submitted and result.operation is not None:
            print(json.dumps(result.operation, indent=2))
        return 0


def invoke() -> None:
    configure_logging()
    configure_sentry(Settings())

    try:
        code = asyncio.run(realMain())
    except TandemError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    invoke()
