"""Tests for the Loki push request encoder."""

import re
from pathlib import Path

import pytest
import snappy
from google.protobuf.descriptor import FieldDescriptor

from iptables_loki.encoder import STREAM_LABELS, PushEncoder, decode_push_request
from iptables_loki.errors import EncodeError
from iptables_loki.logproto import EntryAdapter, PushRequest, StreamAdapter
from iptables_loki.models import RenderedEntry


def _entries(n: int) -> list[RenderedEntry]:
    return [RenderedEntry(1684845113 + i, f'hostname="gw" rule="R{i}"') for i in range(n)]


class TestPushEncoder:
    def test_payload_is_snappy_protobuf(self):
        payload = PushEncoder().encode(_entries(3))
        request = PushRequest()
        request.ParseFromString(snappy.decompress(payload))

        assert len(request.streams) == 1
        stream = request.streams[0]
        assert stream.labels == '{namespace="iptables"}'
        assert [e.line for e in stream.entries] == [e.line for e in _entries(3)]
        assert [e.timestamp.seconds for e in stream.entries] == [e.timestamp for e in _entries(3)]
        assert all(e.timestamp.nanos == 0 for e in stream.entries)

    def test_decode(self):
        labels, entries = decode_push_request(PushEncoder().encode(_entries(8)))
        assert labels == STREAM_LABELS
        assert entries == _entries(8)

    def test_encoder_reuse_does_not_leak_entries(self):
        encoder = PushEncoder()
        encoder.encode(_entries(8))
        _, entries = decode_push_request(encoder.encode(_entries(2)))
        assert entries == _entries(2)

    def test_custom_labels(self):
        encoder = PushEncoder(labels='{namespace="test"}')
        labels, _ = decode_push_request(encoder.encode(_entries(1)))
        assert labels == '{namespace="test"}'
        assert encoder.labels == '{namespace="test"}'

    def test_unicode_line(self):
        entries = [RenderedEntry(1, 'city="São Paulo"')]
        _, decoded = decode_push_request(PushEncoder().encode(entries))
        assert decoded == entries

    def test_invalid_entry_raises_encode_error(self):
        with pytest.raises(EncodeError):
            PushEncoder().encode([RenderedEntry("not-a-number", "line")])


class TestDecode:
    def test_garbage(self):
        with pytest.raises(EncodeError):
            decode_push_request(b"not snappy at all \xff\xff\xff\xff")

    def test_invalid_protobuf(self):
        # Tag 0x0f carries wire type 7, which protobuf rejects.
        with pytest.raises(EncodeError):
            decode_push_request(snappy.compress(b"\x0f"))

    def test_no_streams(self):
        assert decode_push_request(snappy.compress(b"")) == ("", [])


PROTO_FILE = Path(__file__).resolve().parent.parent / "iptables_loki" / "push.proto"

_MESSAGE_RE = re.compile(r"message (\w+) \{(.*?)\}", re.DOTALL)
_FIELD_RE = re.compile(r"(repeated )?([\w.]+) (\w+) = (\d+);")

_SCALARS = {
    "string": FieldDescriptor.TYPE_STRING,
    "uint64": FieldDescriptor.TYPE_UINT64,
}


def _proto_messages() -> dict[str, list[tuple[str, int, bool, str]]]:
    text = PROTO_FILE.read_text()
    return {
        name: [
            (field, int(number), bool(repeated), type_name)
            for repeated, type_name, field, number in _FIELD_RE.findall(body)
        ]
        for name, body in _MESSAGE_RE.findall(text)
    }


class TestSchema:
    def test_package(self):
        assert PushRequest.DESCRIPTOR.full_name == "logproto.PushRequest"
        assert "package logproto;" in PROTO_FILE.read_text()

    @pytest.mark.parametrize("message", [PushRequest, StreamAdapter, EntryAdapter])
    def test_matches_proto_file(self, message):
        declared = _proto_messages()[message.DESCRIPTOR.name]
        fields = message.DESCRIPTOR.fields_by_name

        assert sorted(fields) == sorted(name for name, _, _, _ in declared)
        for name, number, repeated, type_name in declared:
            field = fields[name]
            assert field.number == number
            assert (field.label == FieldDescriptor.LABEL_REPEATED) is repeated
            if type_name in _SCALARS:
                assert field.type == _SCALARS[type_name]
            else:
                assert field.message_type.full_name.endswith(type_name)
