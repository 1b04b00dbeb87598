"""Reassemble complete lines from arbitrarily split byte chunks."""


class LineAssembler:
    """Keeps the trailing partial line between chunks.

    Splitting happens on raw bytes so a multi-byte character cut across two
    chunks is decoded only once it is complete.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._encoding = encoding
        self._partial = b""

    @property
    def pending(self) -> bytes:
        return self._partial

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk and return the complete, non-blank lines it finished."""
        if isinstance(chunk, str):
            chunk = chunk.encode(self._encoding)
        data = self._partial + chunk
        *complete, self._partial = data.split(b"\n")

        lines = []
        for raw in complete:
            text = raw.decode(self._encoding, errors="replace").strip()
            if text:
                lines.append(text)
        return lines

    def reset(self):
        self._partial = b""
