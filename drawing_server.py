import json
import random
import secrets
from typing import Dict, Optional

from aiohttp import web
from loguru import logger

from drawing_api_client.signer import compute_signature

EXPORTED_DRAWING = {
    "sheets": [
        {
            "name": "Sheet1",
            "active": True,
            "views": [{"viewId": "view1", "sheet": "Sheet1"}],
            "annotations": [],
        }
    ]
}


class DrawingServer:
    """Local stand-in for the drawing api that checks request signatures

    Modify and translation jobs stay ACTIVE for completion_polls status requests.
    """

    def __init__(
        self,
        credentials: Dict[str, str],
        completion_polls: int = 2,
        error_rate: float = 0.0,
        rate_limited_requests: int = 0,
    ):
        self.credentials = credentials
        self.completion_polls = completion_polls
        self.error_rate = error_rate
        self.rate_limited_requests = rate_limited_requests
        self.malformed_output = False
        self.out_of_date = False
        self.omit_job_ids = False
        self.workspace_drawings = ["e1", "e2"]
        self.companies = [{"id": "c1", "name": "Acme", "admin": True}]
        self.jobs: Dict[str, dict] = {}
        self.requests = []
        self.seen_nonces = set()
        self.runner: Optional[web.AppRunner] = None
        self.logger = logger

        self.app = web.Application(middlewares=[self.rate_limit, self.verify_signature])
        self.app.router.add_get("/api/companies", self.handle_companies)
        self.app.router.add_get("/api/foo", self.handle_foo)
        self.app.router.add_post(
            "/api/v6/drawings/d/{did}/w/{wid}/e/{eid}/modify", self.handle_modify
        )
        self.app.router.add_get(
            "/api/drawings/modify/status/{job_id}", self.handle_job_status
        )
        self.app.router.add_post(
            "/api/drawings/d/{did}/{wv}/{wvid}/e/{eid}/translations",
            self.handle_translation,
        )
        self.app.router.add_get("/api/translations/{job_id}", self.handle_job_status)
        self.app.router.add_get(
            "/api/documents/d/{did}/externaldata/{fid}", self.handle_external_data
        )
        self.app.router.add_get(
            "/api/v9/appelements/d/{did}/w/{wid}/e/{eid}/resolvereferences",
            self.handle_resolve_references,
        )
        self.app.router.add_get(
            "/api/v9/appelements/d/{did}/w/{wid}/resolvereferences",
            self.handle_workspace_references,
        )
        self.app.router.add_delete("/api/webhooks/{webhook_id}", self.handle_delete)

    @web.middleware
    async def rate_limit(self, request, handler):
        self.requests.append(request)
        if self.rate_limited_requests > 0:
            self.rate_limited_requests -= 1
            self.logger.info("Returning rate limited status")
            raise web.HTTPTooManyRequests()
        return await handler(request)

    @web.middleware
    async def verify_signature(self, request, handler):
        authorization = request.headers.get("Authorization", "")
        nonce = request.headers.get("On-Nonce", "")
        if not authorization.startswith("On ") or ":HmacSHA256:" not in authorization:
            raise web.HTTPUnauthorized(reason="Missing signature")

        access_key, signature = authorization[3:].split(":HmacSHA256:", 1)
        secret_key = self.credentials.get(access_key)
        if secret_key is None:
            raise web.HTTPUnauthorized(reason="Unknown access key")
        if nonce in self.seen_nonces:
            raise web.HTTPUnauthorized(reason="Nonce reused")

        expected = compute_signature(
            secret_key,
            request.method,
            nonce,
            request.headers.get("Date", ""),
            request.headers.get("Content-Type", ""),
            request.rel_url.raw_path,
            request.rel_url.raw_query_string,
        )
        if not secrets.compare_digest(expected, signature):
            raise web.HTTPUnauthorized(reason="Bad signature")

        self.seen_nonces.add(nonce)
        return await handler(request)

    def _new_job(self, kind: str, document_id: str, annotations: int = 0) -> dict:
        job = {
            "id": secrets.token_hex(12),
            "kind": kind,
            "documentId": document_id,
            "annotations": annotations,
            "polls": 0,
        }
        self.jobs[job["id"]] = job
        status = {"id": job["id"], "requestState": "ACTIVE", "documentId": document_id}
        if self.omit_job_ids:
            del status["id"]
        return status

    async def handle_companies(self, request):
        return web.json_response({"items": self.companies})

    async def handle_foo(self, request):
        return web.json_response("ok")

    async def handle_modify(self, request):
        body = await request.json()
        annotations = sum(
            len(json_request.get("annotations", []))
            for json_request in body.get("jsonRequests", [])
        )
        return web.json_response(
            self._new_job("modify", request.match_info["did"], annotations)
        )

    async def handle_translation(self, request):
        return web.json_response(self._new_job("translation", request.match_info["did"]))

    async def handle_job_status(self, request):
        job = self.jobs.get(request.match_info["job_id"])
        if job is None:
            raise web.HTTPNotFound()

        job["polls"] += 1
        status = {"id": job["id"], "requestState": "ACTIVE", "documentId": job["documentId"]}
        if job["polls"] < self.completion_polls:
            self.logger.info(f"Returning active status (polls: {job['polls']})")
            return web.json_response(status)

        if random.random() < self.error_rate:
            self.logger.info("Returning failed status")
            status.update(requestState="FAILED", failureReason="Simulated failure")
            return web.json_response(status)

        self.logger.info("Returning done status")
        status["requestState"] = "DONE"
        if job["kind"] == "translation":
            status["resultExternalDataIds"] = [f"ext-{job['id']}"]
        elif self.malformed_output:
            status["output"] = "{not json"
        else:
            status["output"] = json.dumps(
                {
                    "status": "OK",
                    "results": [
                        {"status": "RequestSuccess", "logicalId": f"h:{index:08X}"}
                        for index in range(job["annotations"])
                    ],
                }
            )
        return web.json_response(status)

    async def handle_external_data(self, request):
        return web.Response(
            body=json.dumps(EXPORTED_DRAWING).encode("utf-8"),
            content_type="application/octet-stream",
        )

    def _references(self, out_of_date: bool) -> dict:
        latest = "mv2" if out_of_date else "mv1"
        return {
            "resolvedReferences": [
                {
                    "targetElementMicroversionId": "mv1",
                    "latestElementMicroversionId": latest,
                }
            ]
        }

    async def handle_resolve_references(self, request):
        return web.json_response(self._references(self.out_of_date))

    async def handle_workspace_references(self, request):
        if request.query.get("drawingsOnly") != "true":
            raise web.HTTPBadRequest(reason="drawingsOnly=true is required")
        # Only the first drawing goes stale
        return web.json_response(
            {
                element_id: self._references(self.out_of_date and index == 0)
                for index, element_id in enumerate(self.workspace_drawings)
            }
        )

    async def handle_delete(self, request):
        return web.Response(status=204)

    async def start(self, port: int = 0) -> int:
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "127.0.0.1", port)
        await site.start()
        port = self.runner.addresses[0][1]
        self.logger.info(f"Server started on port {port}")
        return port

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
