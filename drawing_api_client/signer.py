import base64
import hashlib
import hmac
import secrets
import string
import sys
from email.utils import formatdate
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit

from drawing_api_client.models import SignedRequest

CLIENT_NAME = "drawing-api-client"
CLIENT_VERSION = "1.1.0"

NONCE_LENGTH = 25
NONCE_ALPHABET = string.ascii_letters + string.digits
REQUEST_ID_LENGTH = 24

DEFAULT_CONTENT_TYPE = "application/json"
DEFAULT_ACCEPT = "application/vnd.onshape.v2+json;charset=UTF-8;qs=0.2"


def default_script_name() -> str:
    return Path(sys.argv[0] or "main").stem or "main"


def generate_nonce() -> str:
    return "".join(secrets.choice(NONCE_ALPHABET) for _ in range(NONCE_LENGTH))


def http_date() -> str:
    """Current time as an RFC 1123 date in GMT"""
    return formatdate(usegmt=True)


def split_uri(uri: str) -> Tuple[str, str, str]:
    """Split a uri into the url to send, its path and its normalized query string

    The query string is re-serialized and appended to the path so the transport
    receives exactly the bytes that were signed.
    """
    parts = urlsplit(uri)
    path = parts.path or "/"
    query = urlencode(parse_qsl(parts.query, keep_blank_values=True))
    url = f"{parts.scheme}://{parts.netloc}{path}"
    if query:
        url = f"{url}?{query}"
    return url, path, query


def canonical_string(
    method: str, nonce: str, date: str, content_type: str, path: str, query: str
) -> str:
    return "\n".join([method, nonce, date, content_type, path, query, ""]).lower()


def compute_signature(
    secret_key: str,
    method: str,
    nonce: str,
    date: str,
    content_type: str,
    path: str,
    query: str,
) -> str:
    message = canonical_string(method, nonce, date, content_type, path, query)
    digest = hmac.new(
        secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def authorization_header(access_key: str, signature: str) -> str:
    return f"On {access_key}:HmacSHA256:{signature}"


class RequestSigner:
    def __init__(
        self,
        access_key: str,
        secret_key: str,
        company_id: Optional[str] = None,
        script_name: Optional[str] = None,
    ):
        self.access_key = access_key
        self.secret_key = secret_key
        self.company_id = company_id
        self.script_name = script_name or default_script_name()

    @property
    def user_agent(self) -> str:
        return f"{CLIENT_NAME}-{CLIENT_VERSION}/{self.script_name}"

    def request_id(self) -> str:
        return (
            f"ospy-{self.script_name}-{self.company_id}-"
            f"{secrets.token_hex(REQUEST_ID_LENGTH // 2)}"
        )

    def sign(
        self,
        method: str,
        uri: str,
        content_type: Optional[str] = None,
        accept: Optional[str] = None,
        nonce: Optional[str] = None,
        date: Optional[str] = None,
    ) -> SignedRequest:
        """Build the headers of one transmission attempt

        Call once per attempt: the server rejects a nonce/date pair it has already seen.
        """
        nonce = nonce or generate_nonce()
        date = date or http_date()
        content_type = content_type or DEFAULT_CONTENT_TYPE
        url, path, query = split_uri(uri)

        signature = compute_signature(
            self.secret_key, method, nonce, date, content_type, path, query
        )
        headers = {
            "Authorization": authorization_header(self.access_key, signature),
            "On-Nonce": nonce,
            "Date": date,
            "Content-Type": content_type,
            "Accept": accept or DEFAULT_ACCEPT,
            "User-Agent": self.user_agent,
            "X-Request-Id": self.request_id(),
        }
        return SignedRequest(
            method=method,
            url=url,
            nonce=nonce,
            date=date,
            content_type=content_type,
            headers=headers,
        )
