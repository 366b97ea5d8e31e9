"""Multipart form encoding for remote requests."""

import uuid

from dataclasses import dataclass


@dataclass(frozen=True)
class FilePart:
    """A binary form field sent as a file upload."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


FormValue = str | FilePart


def encode_multipart(fields: list[tuple[str, FormValue]]) -> tuple[bytes, str]:
    """
    Encode form fields as multipart/form-data.

    Returns:
        (body, content_type header value)
    """
    boundary = uuid.uuid4().hex
    chunks: list[bytes] = []
    for name, value in fields:
        chunks.append(f"--{boundary}\r\n".encode("ascii"))
        if isinstance(value, FilePart):
            chunks.append(
                f'Content-Disposition: form-data; name="{name}"; '
                f'filename="{value.filename}"\r\n'
                f"Content-Type: {value.content_type}\r\n\r\n".encode("utf-8")
            )
            chunks.append(value.content)
        else:
            chunks.append(
                f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode("utf-8")
            )
            chunks.append(value.encode("utf-8"))
        chunks.append(b"\r\n")
    chunks.append(f"--{boundary}--\r\n".encode("ascii"))
    return b"".join(chunks), f"multipart/form-data; boundary={boundary}"
