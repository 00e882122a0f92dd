import json
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from loguru import logger

from drawing_api_client.drawing_api_client import ApiClient
from drawing_api_client.errors import DrawingUriError, PayloadParseError
from drawing_api_client.models import (
    DrawingScriptArgs,
    ExportedDataPointer,
    JobKind,
    ModifyStatusResponseOutput,
)

DRAWING_PATH_PATTERN = re.compile(
    r"^/documents/([0-9a-f]{24})/([wv])/([0-9a-f]{24})/e/([0-9a-f]{24})$"
)
ANNOTATION_FORMAT_VERSION = "2021-01-01"


def parse_drawing_uri(drawing_uri: str, stack: Optional[str] = None) -> DrawingScriptArgs:
    """Extract document, workspace or version, and element ids from a drawing url"""
    if not drawing_uri:
        raise DrawingUriError("Please specify --drawinguri=Xxx as an argument")

    logger.info(f"Processing drawinguri={drawing_uri}")
    parts = urlsplit(drawing_uri)
    if not parts.scheme or not parts.netloc:
        raise DrawingUriError(f"Failed to parse {drawing_uri} as valid URL")

    path = parts.path.lower()
    match = DRAWING_PATH_PATTERN.match(path)
    if not match:
        raise DrawingUriError(
            f"Failed to extract documentId, workspaceId and elementId from {path}"
        )

    document_id, wv, wv_id, element_id = match.groups()
    return DrawingScriptArgs(
        stack=stack,
        base_url=f"{parts.scheme}://{parts.netloc}".lower(),
        document_id=document_id,
        workspace_id=wv_id if wv == "w" else "",
        version_id=wv_id if wv == "v" else "",
        element_id=element_id,
    )


def validate_base_urls(credentials_base_url: str, argument_base_url: str) -> bool:
    """Warn when the credentials point at another stack than the drawing uri

    Both can name the same host and still differ, e.g. 127.0.0.1 and localhost.
    """
    matches = credentials_base_url.rstrip("/").lower() == argument_base_url.rstrip("/").lower()
    if not matches:
        logger.warning(
            f"Credentials base URL {credentials_base_url} does not match "
            f"drawinguri base URL {argument_base_url}"
        )
    return matches


def build_note_request(
    text: str, position: Sequence[float], text_height: float = 0.12
) -> Dict[str, Any]:
    return {
        "description": "Add note",
        "jsonRequests": [
            {
                "messageName": "onshapeCreateAnnotations",
                "formatVersion": ANNOTATION_FORMAT_VERSION,
                "annotations": [
                    {
                        "type": "Onshape::Note",
                        "note": {
                            "position": {
                                "type": "Onshape::Reference::Point",
                                "coordinate": list(position),
                            },
                            "contents": text,
                            "textHeight": text_height,
                        },
                    }
                ],
            }
        ],
    }


def started_job_id(response: Any, kind: str) -> str:
    """Id of the job a POST started, taken from the initial job status"""
    job_id = response.get("id") if isinstance(response, dict) else None
    if not job_id:
        raise PayloadParseError("unknown", f"{kind} job started without an id")
    return job_id


async def create_modify_job(
    client: ApiClient, args: DrawingScriptArgs, body: Dict[str, Any]
) -> str:
    if not args.workspace_id:
        raise DrawingUriError("Drawings can only be modified in a workspace")
    response = await client.post(
        f"api/v6/drawings/d/{args.document_id}/w/{args.workspace_id}"
        f"/e/{args.element_id}/modify",
        body,
    )
    job_id = started_job_id(response, "modify")
    logger.info(f"Initiated drawing modify job {job_id}")
    return job_id


async def wait_for_modify_to_finish(
    client: ApiClient, modify_job_id: str, timeout_seconds: Optional[float] = None
) -> Optional[ModifyStatusResponseOutput]:
    outcome = await client.wait_for_job(
        f"api/drawings/modify/status/{modify_job_id}",
        kind=JobKind.modify,
        timeout_seconds=timeout_seconds,
    )
    outcome.raise_for_state()
    return outcome.result


def count_results(output: ModifyStatusResponseOutput) -> Tuple[int, int]:
    succeeded = sum(1 for result in output.results if result.succeeded)
    return succeeded, len(output.results) - succeeded


async def export_drawing_json(
    client: ApiClient, args: DrawingScriptArgs, timeout_seconds: Optional[float] = None
) -> Dict[str, Any]:
    """Export the drawing as json through a translation job and fetch the export"""
    response = await client.post(
        f"api/drawings/d/{args.document_id}/{args.workspace_or_version}/"
        f"{args.workspace_or_version_id}/e/{args.element_id}/translations",
        {"formatName": "DRAWING_JSON", "storeInDocument": False, "level": "full"},
    )
    translation_id = started_job_id(response, "translation")
    logger.info(f"Initiated export of drawing as json, translation={translation_id}")

    outcome = await client.wait_for_job(
        f"api/translations/{translation_id}",
        kind=JobKind.translation,
        timeout_seconds=timeout_seconds,
    )
    outcome.raise_for_state()
    pointer: ExportedDataPointer = outcome.result
    if not pointer.external_data_ids:
        raise PayloadParseError(translation_id, "export produced no external data")

    external_id = pointer.external_data_ids[0]
    logger.debug(f"Fetching exported data id={external_id}")
    export = await client.get(f"api/documents/d/{args.document_id}/externaldata/{external_id}")
    if isinstance(export, str):
        try:
            export = json.loads(export)
        except json.JSONDecodeError as e:
            raise PayloadParseError(translation_id, f"export is not json: {e}") from e
    return export


def references_out_of_date(resolved_references: List[Dict[str, Any]]) -> bool:
    return any(
        ref.get("latestElementMicroversionId") != ref.get("targetElementMicroversionId")
        for ref in resolved_references
    )


async def drawing_needs_update(client: ApiClient, args: DrawingScriptArgs) -> bool:
    """Whether the drawing references model changes it has not picked up yet"""
    if not args.workspace_id:
        raise DrawingUriError("Update detection needs a workspace drawing uri")
    response = await client.get(
        f"api/v9/appelements/d/{args.document_id}/w/{args.workspace_id}"
        f"/e/{args.element_id}/resolvereferences?includeInternal=false"
    )
    return references_out_of_date((response or {}).get("resolvedReferences") or [])


async def workspace_drawings_needing_update(
    client: ApiClient, args: DrawingScriptArgs
) -> List[str]:
    """Element ids of the drawings in the workspace with out of date references"""
    if not args.workspace_id:
        raise DrawingUriError("Update detection needs a workspace drawing uri")
    logger.info("Initiated retrieval of workspace drawing references")
    # drawingsOnly=true is required to get the per drawing mapping
    response = await client.get(
        f"api/v9/appelements/d/{args.document_id}/w/{args.workspace_id}"
        f"/resolvereferences?includeInternal=false&drawingsOnly=true"
    )
    if response is not None and not isinstance(response, dict):
        raise PayloadParseError("resolvereferences", "expected a map of drawing ids")
    return [
        element_id
        for element_id, drawing in (response or {}).items()
        if references_out_of_date((drawing or {}).get("resolvedReferences") or [])
    ]
