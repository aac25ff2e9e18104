"""Loki push API protobuf messages, as declared in ``push.proto`` next to this module.

The classes are built from a FileDescriptorProto at import time rather than
from a protoc-generated ``push_pb2`` module. Generated code is tied to the
protoc release that produced it and refuses to load under an older protobuf
runtime, while a descriptor built here works with any runtime the package
installs against. ``tests/test_encoder.py`` checks that the two schemas agree.
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf import timestamp_pb2

_FDP = descriptor_pb2.FieldDescriptorProto


def _field(name: str, number: int, field_type: int, label: int = _FDP.LABEL_OPTIONAL,
           type_name: str | None = None) -> descriptor_pb2.FieldDescriptorProto:
    f = _FDP(name=name, number=number, type=field_type, label=label, json_name=name)
    if type_name:
        f.type_name = type_name
    return f


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    fd = descriptor_pb2.FileDescriptorProto(
        name="iptables_loki/push.proto",
        package="logproto",
        syntax="proto3",
        dependency=["google/protobuf/timestamp.proto"],
    )

    push = fd.message_type.add(name="PushRequest")
    push.field.append(_field("streams", 1, _FDP.TYPE_MESSAGE, _FDP.LABEL_REPEATED,
                             ".logproto.StreamAdapter"))

    stream = fd.message_type.add(name="StreamAdapter")
    stream.field.append(_field("labels", 1, _FDP.TYPE_STRING))
    stream.field.append(_field("entries", 2, _FDP.TYPE_MESSAGE, _FDP.LABEL_REPEATED,
                               ".logproto.EntryAdapter"))
    stream.field.append(_field("hash", 3, _FDP.TYPE_UINT64))

    entry = fd.message_type.add(name="EntryAdapter")
    entry.field.append(_field("timestamp", 1, _FDP.TYPE_MESSAGE,
                              type_name=".google.protobuf.Timestamp"))
    entry.field.append(_field("line", 2, _FDP.TYPE_STRING))
    return fd


def _build_pool() -> descriptor_pool.DescriptorPool:
    pool = descriptor_pool.DescriptorPool()
    timestamp_fd = descriptor_pb2.FileDescriptorProto()
    timestamp_pb2.DESCRIPTOR.CopyToProto(timestamp_fd)
    pool.AddSerializedFile(timestamp_fd.SerializeToString())
    pool.AddSerializedFile(_build_file().SerializeToString())
    return pool


_POOL = _build_pool()

PushRequest = message_factory.GetMessageClass(_POOL.FindMessageTypeByName("logproto.PushRequest"))
StreamAdapter = message_factory.GetMessageClass(_POOL.FindMessageTypeByName("logproto.StreamAdapter"))
EntryAdapter = message_factory.GetMessageClass(_POOL.FindMessageTypeByName("logproto.EntryAdapter"))
