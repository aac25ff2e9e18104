"""Encode batches as snappy-compressed Loki PushRequest messages."""

import logging

import snappy

from iptables_loki.errors import EncodeError
from iptables_loki.logproto import PushRequest
from iptables_loki.models import RenderedEntry

logger = logging.getLogger(__name__)

STREAM_LABELS = '{namespace="iptables"}'


class PushEncoder:
    """Serializes a batch into one labelled stream and compresses it.

    The PushRequest message is reused between batches.
    """

    def __init__(self, labels: str = STREAM_LABELS):
        self._labels = labels
        self._request = PushRequest()

    @property
    def labels(self) -> str:
        return self._labels

    def encode(self, entries: list[RenderedEntry]) -> bytes:
        """Return the compressed payload for *entries*.

        Raises:
            EncodeError: If serialization or compression fails.
        """
        request = self._request
        request.Clear()
        try:
            stream = request.streams.add()
            stream.labels = self._labels
            for timestamp, line in entries:
                entry = stream.entries.add()
                entry.timestamp.seconds = timestamp
                entry.line = line
            serialized = request.SerializeToString()
            return snappy.compress(serialized)
        except Exception as exc:
            raise EncodeError(f"Failed to encode batch of {len(entries)} entries: {exc}") from exc


def decode_push_request(payload: bytes) -> tuple[str, list[RenderedEntry]]:
    """Decompress and parse a payload produced by :class:`PushEncoder`.

    Returns the stream labels and the entries of the first stream.
    """
    try:
        request = PushRequest()
        request.ParseFromString(snappy.decompress(payload))
    except Exception as exc:
        raise EncodeError(f"Failed to decode push request: {exc}") from exc

    if not request.streams:
        return "", []
    stream = request.streams[0]
    return stream.labels, [
        RenderedEntry(entry.timestamp.seconds, entry.line) for entry in stream.entries
    ]
