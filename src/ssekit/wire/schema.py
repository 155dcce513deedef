"""qlik.sse wire schema

The message layout of the server-side extension protocol is fixed. Rather than
shipping protoc output, the schema is described here as a FileDescriptorProto
and loaded into a private descriptor pool; the message classes are then
obtained from the protobuf runtime. The resulting classes behave exactly like
generated ones (FromString, SerializeToString, field access by schema name).

## Messages

- Empty
- Parameter { dataType = 1; name = 2 }
- FunctionDefinition { name = 1; functionType = 2; returnType = 3; params = 4; functionId = 5 }
- Capabilities { allowScript = 1; functions = 2; pluginIdentifier = 3; pluginVersion = 4 }
- Dual { numData = 1; strData = 2 }
- Row { duals = 1 }
- BundledRows { rows = 1 }
- ScriptRequestHeader { script = 1; functionType = 2; returnType = 3; params = 4 }
- FunctionRequestHeader { functionId = 1; version = 2 }
- CommonRequestHeader { appId = 1; userId = 2; cardinality = 3 }

## Service

Connector { GetCapabilities(Empty) -> Capabilities;
            ExecuteFunction(stream BundledRows) -> stream BundledRows;
            EvaluateScript(stream BundledRows) -> stream BundledRows }
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from ssekit.types import DataType, FunctionType


PACKAGE = "qlik.sse"
SERVICE_NAME = f"{PACKAGE}.Connector"

_F = descriptor_pb2.FieldDescriptorProto

# (name, number, type, label, type_name)
_MESSAGES = {
    "Empty": [],
    "Parameter": [
        ("dataType", 1, _F.TYPE_ENUM, _F.LABEL_OPTIONAL, "DataType"),
        ("name", 2, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
    ],
    "FunctionDefinition": [
        ("name", 1, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("functionType", 2, _F.TYPE_ENUM, _F.LABEL_OPTIONAL, "FunctionType"),
        ("returnType", 3, _F.TYPE_ENUM, _F.LABEL_OPTIONAL, "DataType"),
        ("params", 4, _F.TYPE_MESSAGE, _F.LABEL_REPEATED, "Parameter"),
        ("functionId", 5, _F.TYPE_INT32, _F.LABEL_OPTIONAL, None),
    ],
    "Capabilities": [
        ("allowScript", 1, _F.TYPE_BOOL, _F.LABEL_OPTIONAL, None),
        ("functions", 2, _F.TYPE_MESSAGE, _F.LABEL_REPEATED, "FunctionDefinition"),
        ("pluginIdentifier", 3, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("pluginVersion", 4, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
    ],
    "Dual": [
        ("numData", 1, _F.TYPE_DOUBLE, _F.LABEL_OPTIONAL, None),
        ("strData", 2, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
    ],
    "Row": [
        ("duals", 1, _F.TYPE_MESSAGE, _F.LABEL_REPEATED, "Dual"),
    ],
    "BundledRows": [
        ("rows", 1, _F.TYPE_MESSAGE, _F.LABEL_REPEATED, "Row"),
    ],
    "ScriptRequestHeader": [
        ("script", 1, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("functionType", 2, _F.TYPE_ENUM, _F.LABEL_OPTIONAL, "FunctionType"),
        ("returnType", 3, _F.TYPE_ENUM, _F.LABEL_OPTIONAL, "DataType"),
        ("params", 4, _F.TYPE_MESSAGE, _F.LABEL_REPEATED, "Parameter"),
    ],
    "FunctionRequestHeader": [
        ("functionId", 1, _F.TYPE_INT32, _F.LABEL_OPTIONAL, None),
        ("version", 2, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
    ],
    "CommonRequestHeader": [
        ("appId", 1, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("userId", 2, _F.TYPE_STRING, _F.LABEL_OPTIONAL, None),
        ("cardinality", 3, _F.TYPE_INT64, _F.LABEL_OPTIONAL, None),
    ],
}

# (name, input, output, client_streaming, server_streaming)
_METHODS = [
    ("GetCapabilities", "Empty", "Capabilities", False, False),
    ("ExecuteFunction", "BundledRows", "BundledRows", True, True),
    ("EvaluateScript", "BundledRows", "BundledRows", True, True),
]


def _qualified(name: str) -> str:
    return f".{PACKAGE}.{name}"


def build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Describe SSE.proto as a FileDescriptorProto"""
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="ssekit/SSE.proto",
        package=PACKAGE,
        syntax="proto3",
    )

    for enum_cls in (DataType, FunctionType):
        enum_proto = file_proto.enum_type.add(name=enum_cls.__name__)
        for member in enum_cls:
            enum_proto.value.add(name=member.name, number=member.value)

    for message_name, fields in _MESSAGES.items():
        message_proto = file_proto.message_type.add(name=message_name)
        for field_name, number, field_type, label, type_name in fields:
            field_proto = message_proto.field.add(
                name=field_name,
                number=number,
                type=field_type,
                label=label,
            )
            if type_name is not None:
                field_proto.type_name = _qualified(type_name)

    service_proto = file_proto.service.add(name="Connector")
    for method_name, input_name, output_name, client_streaming, server_streaming in _METHODS:
        service_proto.method.add(
            name=method_name,
            input_type=_qualified(input_name),
            output_type=_qualified(output_name),
            client_streaming=client_streaming,
            server_streaming=server_streaming,
        )

    return file_proto


_pool = descriptor_pool.DescriptorPool()
FILE_DESCRIPTOR = _pool.AddSerializedFile(build_file_descriptor().SerializeToString())


def _message_class(name: str):
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.{name}"))


Empty = _message_class("Empty")
ParameterMessage = _message_class("Parameter")
FunctionDefinitionMessage = _message_class("FunctionDefinition")
CapabilitiesMessage = _message_class("Capabilities")
DualMessage = _message_class("Dual")
RowMessage = _message_class("Row")
BundledRows = _message_class("BundledRows")
ScriptRequestHeaderMessage = _message_class("ScriptRequestHeader")
FunctionRequestHeaderMessage = _message_class("FunctionRequestHeader")
CommonRequestHeaderMessage = _message_class("CommonRequestHeader")
