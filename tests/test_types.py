import pytest

from avd.types import (
    DictionaryItem,
    NotImplementedFeatureError,
    OnEndAction,
    PortMode,
    Protocol,
    PublishMode,
    TransportProtocol,
    parse_port_address,
    supported_protocols,
)


@pytest.mark.parametrize(
    "protocol, label, fmt",
    [
        (Protocol.RTMP, "rtmp", "flv"),
        (Protocol.RTSP, "rtsp", "rtsp"),
        (Protocol.SRT, "srt", "mpegts"),
        (Protocol.MPEGTS, "mpegts", "mpegts"),
    ],
)
def test_protocol_labels_and_formats(protocol, label, fmt):
    assert str(protocol) == label
    assert f"{protocol}" == label
    assert protocol.format_name() == fmt
    assert protocol.is_valid()


def test_undefined_protocol():
    assert not Protocol.UNDEFINED.is_valid()
    assert str(Protocol.UNDEFINED) == ""
    assert Protocol.UNDEFINED.format_name() == ""


@pytest.mark.parametrize("enum_cls", [Protocol, PortMode, TransportProtocol, OnEndAction, PublishMode])
def test_from_name_round_trip(enum_cls):
    for member in enum_cls:
        assert enum_cls.from_name(str(member)) is member


def test_from_name_normalizes_case_and_spaces():
    assert Protocol.from_name(" RTMP ") is Protocol.RTMP
    assert PortMode.from_name("Publishers") is PortMode.PUBLISHERS
    assert TransportProtocol.from_name("TCP") is TransportProtocol.TCP
    assert OnEndAction.from_name("CLOSE_CONSUMERS ") is OnEndAction.CLOSE_CONSUMERS


@pytest.mark.parametrize("enum_cls", [Protocol, PortMode, TransportProtocol, OnEndAction, PublishMode])
def test_from_name_unknown(enum_cls):
    with pytest.raises(ValueError):
        enum_cls.from_name("no-such-thing")


def test_publish_mode_is_exact_match():
    member = PublishMode.EXCLUSIVE_TAKEOVER
    with pytest.raises(ValueError):
        PublishMode.from_name(" " + str(member))


def test_port_mode_labels():
    assert PortMode.from_name("consumers") is PortMode.CONSUMERS
    assert PortMode.from_name("publishers") is PortMode.PUBLISHERS
    assert PortMode.from_name("") is PortMode.UNDEFINED
    assert str(PortMode.from_name("consumers")) == "consumers"


def test_on_end_action_labels():
    assert str(OnEndAction.CLOSE_CONSUMERS) == "close_consumers"
    assert str(OnEndAction.WAIT_FOR_NEW_PUBLISHER) == "wait_for_new_publisher"
    assert OnEndAction(0) is OnEndAction.CLOSE_CONSUMERS


def test_transport_protocol_labels():
    assert TransportProtocol.from_name("tcp") is TransportProtocol.TCP
    assert TransportProtocol.from_name("udp") is TransportProtocol.UDP
    assert str(TransportProtocol.from_name("udp")) == "udp"


def test_protocols_are_ordered():
    parsed = [Protocol.from_name(name) for name in ("mpegts", "rtmp", "rtsp")]
    assert sorted(parsed) == [
        Protocol.RTMP,
        Protocol.RTSP,
        Protocol.MPEGTS,
    ]


def test_supported_protocols():
    assert supported_protocols() == [Protocol.RTMP, Protocol.RTSP]


@pytest.mark.parametrize(
    "address, expected",
    [
        ("tcp:0.0.0.0:1935", ("tcp", "0.0.0.0:1935")),
        ("udp:127.0.0.1:4445", ("udp", "127.0.0.1:4445")),
        ("unix:/tmp/mysock.sock", ("unix", "/tmp/mysock.sock")),
        ("/tmp/mysock.sock", ("unix", "/tmp/mysock.sock")),
        ("mysock", ("unix", "mysock")),
    ],
)
def test_parse_port_address(address, expected):
    assert parse_port_address(address) == expected


@pytest.mark.parametrize("address", ["0.0.0.0", "", "localhost"])
def test_parse_port_address_without_protocol(address):
    with pytest.raises(ValueError, match="protocol is not set"):
        parse_port_address(address)


def test_not_implemented_error_messages():
    assert str(NotImplementedFeatureError()) == "not implemented"
    err = NotImplementedFeatureError("boom")
    assert str(err) == "not implemented: boom"
    assert err.err == "boom"


def test_dictionary_item_value_semantics():
    item = DictionaryItem(key="listen", value="1")
    assert item == DictionaryItem("listen", "1")
    assert {item, DictionaryItem("listen", "1")} == {item}