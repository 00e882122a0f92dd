import re

from drawing_api_client.signer import (
    DEFAULT_ACCEPT,
    RequestSigner,
    canonical_string,
    compute_signature,
    split_uri,
)

NONCE = "abcdefghijklmnopqrstuvwxy"
DATE = "Mon, 19 Oct 2026 14:00:00 GMT"


def test_canonical_string_is_lower_cased_and_newline_joined():
    canonical = canonical_string(
        "GET", NONCE, DATE, "application/json", "/api/documents", "q=1&limit=20"
    )
    assert canonical == (
        "get\nabcdefghijklmnopqrstuvwxy\nmon, 19 oct 2026 14:00:00 gmt\n"
        "application/json\n/api/documents\nq=1&limit=20\n"
    )


def test_signature_golden_vectors():
    assert (
        compute_signature(
            "s3cr3tKey", "GET", NONCE, DATE, "application/json",
            "/api/documents", "q=1&limit=20",
        )
        == "1PRcAYnNXel2frfs3OPvjQAluHt1ujBlzzXZpnXKK2g="
    )
    assert (
        compute_signature(
            "s3cr3tKey", "POST", NONCE, DATE, "application/json",
            "/api/v6/drawings/d/1/w/2/e/3/modify", "",
        )
        == "1j6tnyd6loGO+stVRbZcNeJAdSXtbDKNmGyDlKiqmSk="
    )


def test_sign_is_deterministic_for_fixed_nonce_and_date():
    signer = RequestSigner("ak", "s3cr3tKey", company_id="c1", script_name="tests")
    first = signer.sign("GET", "https://cad.example.com/api/documents?q=1&limit=20",
                        nonce=NONCE, date=DATE)
    second = signer.sign("GET", "https://cad.example.com/api/documents?q=1&limit=20",
                         nonce=NONCE, date=DATE)

    assert first.headers["Authorization"] == second.headers["Authorization"]
    assert first.headers["Authorization"] == (
        "On ak:HmacSHA256:1PRcAYnNXel2frfs3OPvjQAluHt1ujBlzzXZpnXKK2g="
    )


def test_sign_refreshes_nonce_on_every_call():
    signer = RequestSigner("ak", "sk", script_name="tests")
    first = signer.sign("GET", "https://cad.example.com/api/foo")
    second = signer.sign("GET", "https://cad.example.com/api/foo")

    assert first.nonce != second.nonce
    assert first.headers["Authorization"] != second.headers["Authorization"]
    for signed in (first, second):
        assert re.fullmatch(r"[A-Za-z0-9]{25}", signed.nonce)
        assert signed.date.endswith(" GMT")


def test_sign_builds_full_header_set():
    signer = RequestSigner("ak", "sk", company_id="c1", script_name="create-note")
    signed = signer.sign("POST", "https://cad.example.com/api/foo", nonce=NONCE, date=DATE)

    assert signed.headers["On-Nonce"] == NONCE
    assert signed.headers["Date"] == DATE
    assert signed.headers["Content-Type"] == "application/json"
    assert signed.headers["Accept"] == DEFAULT_ACCEPT
    assert signed.headers["User-Agent"].endswith("/create-note")
    assert re.fullmatch(r"ospy-create-note-c1-[0-9a-f]{24}", signed.headers["X-Request-Id"])


def test_sign_honours_accept_and_content_type_overrides():
    signer = RequestSigner("ak", "sk", script_name="tests")
    signed = signer.sign(
        "GET", "https://cad.example.com/api/foo",
        content_type="text/plain", accept="model/gltf+json",
    )
    assert signed.headers["Accept"] == "model/gltf+json"
    assert signed.content_type == "text/plain"


def test_split_uri_reappends_query_to_path():
    url, path, query = split_uri("https://cad.example.com/api/refs?includeInternal=false&a=")
    assert path == "/api/refs"
    assert query == "includeInternal=false&a="
    assert url == "https://cad.example.com/api/refs?includeInternal=false&a="


def test_split_uri_without_query():
    url, path, query = split_uri("https://cad.example.com")
    assert (url, path, query) == ("https://cad.example.com/", "/", "")
