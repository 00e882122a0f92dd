from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from drawing_api_client.errors import JobFailedError

DEFAULT_STACK_URL = "https://cad.onshape.com/"
REQUEST_SUCCESS = "RequestSuccess"


class WireModel(BaseModel):
    """Base for payloads that use camelCase names on the wire"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class StackCredential(WireModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    url: Optional[str] = ""
    access_key: Optional[str] = Field("", alias="accessKey")
    secret_key: Optional[str] = Field("", alias="secretKey")
    company_id: Optional[str] = Field(None, alias="companyId")


class RequestState(str, Enum):
    active = "ACTIVE"
    done = "DONE"
    failed = "FAILED"


class PollState(str, Enum):
    active = "ACTIVE"
    done = "DONE"
    failed = "FAILED"
    timed_out = "TIMED_OUT"


class JobKind(str, Enum):
    modify = "modify"
    translation = "translation"


class Job(WireModel):
    id: str = ""
    request_state: RequestState = Field(alias="requestState")
    failure_reason: Optional[str] = Field(None, alias="failureReason")
    output: Optional[str] = None
    result_external_data_ids: Optional[List[str]] = Field(
        None, alias="resultExternalDataIds"
    )
    document_id: Optional[str] = Field(None, alias="documentId")


class SingleRequestResult(WireModel):
    status: str
    logical_id: Optional[str] = Field(None, alias="logicalId")
    error_description: Optional[str] = Field(None, alias="errorDescription")

    @property
    def succeeded(self) -> bool:
        return self.status == REQUEST_SUCCESS


class ModifyStatusResponseOutput(WireModel):
    status: str
    results: List[SingleRequestResult] = []


class ExportedDataPointer(BaseModel):
    document_id: Optional[str] = None
    external_data_ids: List[str] = []


class PollOutcome(BaseModel):
    state: PollState
    job: Optional[Job] = None
    result: Any = None
    failure_reason: Optional[str] = None
    polls: int = 0
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state == PollState.done

    def raise_for_state(self) -> "PollOutcome":
        """Raise JobFailedError unless the job finished DONE"""
        if not self.succeeded:
            job_id = self.job.id if self.job else ""
            raise JobFailedError(job_id, self.state.value, self.failure_reason)
        return self


class RetryConfig(BaseModel):
    max_attempts: int = 5
    rate_limited_status: int = 429
    initial_sleep_ms: int = 5000
    sleep_multiplier: float = 1.5


class RetryState(BaseModel):
    attempt: int = 1
    sleep_ms: int = 5000
    error_count: int = 1


class PollingConfig(BaseModel):
    timeout_seconds: float = 60.0
    interval_ms: int = 1000


class SignedRequest(BaseModel):
    method: str
    url: str
    nonce: str
    date: str
    content_type: str
    headers: Dict[str, str]


class CompanyInfo(WireModel):
    id: str
    name: Optional[str] = None
    admin: bool = False
    domain_prefix: Optional[str] = Field(None, alias="domainPrefix")


class DrawingScriptArgs(BaseModel):
    stack: Optional[str] = None
    base_url: str = ""
    document_id: str = ""
    workspace_id: str = ""
    version_id: str = ""
    element_id: str = ""

    @property
    def workspace_or_version(self) -> str:
        return "w" if self.workspace_id else "v"

    @property
    def workspace_or_version_id(self) -> str:
        return self.workspace_id or self.version_id
