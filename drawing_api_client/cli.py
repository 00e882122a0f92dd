import argparse
import asyncio
import json
import random
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from drawing_api_client.credentials import DEFAULT_CREDENTIALS_PATH
from drawing_api_client.drawing_api_client import ApiClient
from drawing_api_client.drawing_utils import (
    build_note_request,
    count_results,
    create_modify_job,
    drawing_needs_update,
    export_drawing_json,
    parse_drawing_uri,
    validate_base_urls,
    wait_for_modify_to_finish,
    workspace_drawings_needing_update,
)
from drawing_api_client.errors import DrawingApiError, DrawingUriError
from drawing_api_client.logging_setup import configure_logging
from drawing_api_client.models import DrawingScriptArgs, PollingConfig

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def usage(command: str) -> str:
    return f"Usage: drawing-api {command} --drawinguri=Xxx [--stack=Yyy]"


def random_location(min_location=(1.0, 1.0), max_location=(8.0, 8.0)) -> List[float]:
    return [
        random.uniform(min_location[0], max_location[0]),
        random.uniform(min_location[1], max_location[1]),
        0.0,
    ]


async def create_note(client: ApiClient, args: DrawingScriptArgs, options) -> int:
    location = random_location()
    text = f"Note at x: {location[0]:.3f} y: {location[1]:.3f}"
    job_id = await create_modify_job(client, args, build_note_request(text, location))
    output = await wait_for_modify_to_finish(client, job_id, options.timeout)

    if output is None or not output.results:
        print(f"Created {text}")
        return EXIT_OK

    result = output.results[0]
    if result.succeeded:
        print(f"Create note succeeded and has a logicalId: {result.logical_id}")
        return EXIT_OK
    print(f"Create note failed: {result.error_description}")
    return EXIT_FAILURE


async def export_json(client: ApiClient, args: DrawingScriptArgs, options) -> int:
    export = await export_drawing_json(client, args, options.timeout)
    output = Path(options.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(export, indent=2), encoding="utf-8")
    sheets = export.get("sheets") or []
    print(f"Exported {len(sheets)} sheets to {output}")
    return EXIT_OK


async def detect_update_needed(client: ApiClient, args: DrawingScriptArgs, options) -> int:
    if await drawing_needs_update(client, args):
        print("Drawing needs an update!")
    else:
        print("Drawing does NOT need an update.")
    return EXIT_OK


async def detect_workspace_update_needed(
    client: ApiClient, args: DrawingScriptArgs, options
) -> int:
    drawings = await workspace_drawings_needing_update(client, args)
    if drawings:
        print(f"Workspace contains {len(drawings)} drawing(s) that need an update!")
    else:
        print("Workspace does NOT contain any drawings that need an update.")
    return EXIT_OK


async def company_info(client: ApiClient, args, options) -> int:
    company = await client.find_company_info(options.company_id)
    print(f"Company id={company.id} name={company.name} admin={company.admin}")
    return EXIT_OK


DRAWING_COMMANDS = {
    "create-note": create_note,
    "export-drawing-json": export_json,
    "detect-update-needed": detect_update_needed,
    "detect-workspace-update-needed": detect_workspace_update_needed,
}


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--stack", help="stack name in the credentials file")
    common.add_argument("--credentials", default=DEFAULT_CREDENTIALS_PATH)
    common.add_argument("--log-dir", default="./logs")
    common.add_argument(
        "--timeout", type=float, default=None, help="job polling timeout in seconds"
    )

    parser = argparse.ArgumentParser(
        prog="drawing-api", description="Create and inspect drawing annotations"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    for name in DRAWING_COMMANDS:
        command = commands.add_parser(name, parents=[common])
        command.add_argument("--drawinguri", default="")
        if name == "export-drawing-json":
            command.add_argument(
                "--output", default="./output/export-drawing-json/drawing.json"
            )

    command = commands.add_parser("company-info", parents=[common])
    command.add_argument("--company-id", default=None)
    return parser


async def run(options: argparse.Namespace) -> int:
    args = None
    if options.command in DRAWING_COMMANDS:
        args = parse_drawing_uri(options.drawinguri, options.stack)
        logger.info(
            f"documentId={args.document_id}, workspaceId={args.workspace_id}, "
            f"versionId={args.version_id}, elementId={args.element_id}"
        )

    polling = PollingConfig(timeout_seconds=options.timeout) if options.timeout else None
    client = ApiClient.create(
        options.stack,
        options.credentials,
        script_name=options.command,
        polling_config=polling,
    )
    async with client:
        if args is not None:
            validate_base_urls(client.get_base_url(), args.base_url)
            return await DRAWING_COMMANDS[options.command](client, args, options)
        return await company_info(client, args, options)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    options = parser.parse_args(argv)
    configure_logging(options.command, options.log_dir)

    try:
        return asyncio.run(run(options))
    except DrawingUriError as e:
        print(usage(options.command), file=sys.stderr)
        print(e, file=sys.stderr)
        logger.error(f"{options.command} failed: {e}")
        return EXIT_USAGE
    except DrawingApiError as e:
        print(e, file=sys.stderr)
        logger.error(f"{options.command} failed: {e}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
