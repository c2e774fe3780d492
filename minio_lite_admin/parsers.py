import json
from typing import Any, Dict, List


_DECODER = json.JSONDecoder()


def parse_json_stream(stdout: str) -> List[Dict[str, Any]]:
    """Parse ``mc --json`` output into a list of JSON objects.

    The CLI prints one document per result, either compact (one per line)
    or indented across several lines, so documents are decoded back to back
    rather than line by line. A top-level array is flattened.
    Raises ValueError on anything that is not JSON.
    """
    text = stdout.strip()
    docs: List[Dict[str, Any]] = []
    pos = 0
    while pos < len(text):
        # Skip whitespace between documents
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos >= len(text):
            break
        try:
            obj, pos = _DECODER.raw_decode(text, pos)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON output at offset {e.pos}: {e.msg}") from e
        if isinstance(obj, list):
            docs.extend(o for o in obj if isinstance(o, dict))
        elif isinstance(obj, dict):
            docs.append(obj)
    return docs


def error_message(stdout: str, stderr: str) -> str:
    """Pull the most specific error message out of a failed CLI call."""
    for stream in (stderr, stdout):
        try:
            docs = parse_json_stream(stream)
        except ValueError:
            continue
        for doc in docs:
            if doc.get("status") != "error":
                continue
            err = doc.get("error") or {}
            if isinstance(err, str):
                return err
            message = str(err.get("message") or "").strip()
            cause = err.get("cause") or {}
            cause_msg = str(cause.get("message") or "").strip() if isinstance(cause, dict) else ""
            if cause_msg and cause_msg not in message:
                return f"{message}: {cause_msg}" if message else cause_msg
            if message:
                return message
    for stream in (stderr, stdout):
        lines = [ln.strip() for ln in stream.splitlines() if ln.strip()]
        if lines:
            return lines[-1][-2000:]
    return "unknown error"
