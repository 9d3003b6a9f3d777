"""
Payload compression for cache entries.

Text is stored as the only member of an in-memory zip archive and the archive
bytes are base64 encoded, so the result is plain ASCII whose length equals its
byte size.
"""

from __future__ import annotations

import base64
import binascii
import io
import zipfile
import zlib

from odc.exceptions import CorruptPayloadError

ENTRY_NAME = "payload"

# Fixed member timestamp keeps compress() deterministic
_ENTRY_DATE_TIME = (1980, 1, 1, 0, 0, 0)


def compress(text: str) -> str:
    """Zip and base64 encode a string."""
    info = zipfile.ZipInfo(ENTRY_NAME, date_time=_ENTRY_DATE_TIME)
    info.compress_type = zipfile.ZIP_DEFLATED

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w") as archive:
        archive.writestr(info, text.encode("utf-8"))
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def decompress(compressed: str) -> str:
    """Reverse compress().

    Raises:
        CorruptPayloadError: If the input is not a base64 encoded archive
            holding exactly one UTF-8 member.
    """
    try:
        raw = base64.b64decode(compressed, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CorruptPayloadError(
            "Cache payload is not valid base64",
            context={"length": len(compressed), "error": str(e)},
        ) from e

    try:
        with zipfile.ZipFile(io.BytesIO(raw)) as archive:
            names = archive.namelist()
            if len(names) != 1:
                raise CorruptPayloadError(
                    "Cache payload archive must hold exactly one entry",
                    context={"entries": len(names)},
                )
            data = archive.read(names[0])
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        zlib.error,
        OSError,
        EOFError,
        # Encrypted members and unknown compression methods
        RuntimeError,
        NotImplementedError,
    ) as e:
        raise CorruptPayloadError(
            "Cache payload is not a valid archive",
            context={"length": len(compressed), "error": str(e)},
        ) from e

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CorruptPayloadError(
            "Cache payload is not valid UTF-8",
            context={"error": str(e)},
        ) from e
