import pytest

from xoprovider.models import VIF
from xoprovider.networks import (
    expand_networks,
    extract_ips_from_networks,
    get_formatted_mac,
    should_update_vif,
    sort_network_maps_by_device,
    sort_networks_by_device,
    vif_hash,
    vifs_to_map_list,
)

IPV4 = "169.254.169.254"
SECOND_IPV4 = "169.254.255.254"
IPV6 = "2001:0db8:85a3:0000:0000:8a2e:0370:7334"
SECOND_IPV6 = "2001:0db8:85a3:0000:0000:8a2e:0370:7000"


def test_extract_ips_empty():
    assert extract_ips_from_networks({}) == []


def test_extract_ips_two_devices():
    networks = {}
    for device in ("0", "1"):
        networks.update(
            {
                f"{device}/ip": IPV4,
                f"{device}/ipv4/0": IPV4,
                f"{device}/ipv4/1": SECOND_IPV4,
                f"{device}/ipv6/0": IPV6,
                f"{device}/ipv6/1": SECOND_IPV6,
            }
        )
    expected = {"ip": [IPV4], "ipv4": [IPV4, SECOND_IPV4], "ipv6": [IPV6, SECOND_IPV6]}
    assert extract_ips_from_networks(networks) == [expected, expected]


def test_extract_ips_ignores_unmatched_keys_and_fills_gaps():
    result = extract_ips_from_networks({"0/bogus": "x", "2/ipv4/0": IPV4})
    assert result == [{}, {}, {"ipv4": [IPV4]}]


def test_extract_ips_rejects_unexpected_last_key():
    with pytest.raises(ValueError):
        extract_ips_from_networks({"0/ip": IPV4, "zzz": "x"})


def test_get_formatted_mac_dashes_to_colons():
    assert get_formatted_mac("02-00-00-AA-BB-01") == "02:00:00:aa:bb:01"


def test_get_formatted_mac_empty():
    assert get_formatted_mac("") == ""


def test_get_formatted_mac_invalid():
    with pytest.raises(ValueError):
        get_formatted_mac("not a mac")


def test_vif_hash_matches_between_vif_and_map():
    vif = VIF(attached=True, device="0", network="net", mac_address="02:00:00:00:00:01")
    block = {
        "attached": True,
        "device": "0",
        "network_id": "net",
        "mac_address": "02:00:00:00:00:01",
    }
    assert vif_hash(vif) == vif_hash(block)
    assert vif_hash(vif) != vif_hash({**block, "attached": False})


def test_vif_hash_rejects_other_types():
    with pytest.raises(TypeError):
        vif_hash(42)


@pytest.mark.parametrize(
    "vif, haystack, expected",
    [
        (
            VIF(mac_address="mac address", attached=True),
            [VIF(id="id", mac_address="mac address", attached=False)],
            (True, True),
        ),
        (
            VIF(id="id", attached=True),
            [VIF(id="id", attached=False)],
            (True, True),
        ),
        (
            VIF(id="id", attached=False),
            [VIF(id="id", attached=False)],
            (False, False),
        ),
    ],
)
def test_should_update_vif(vif, haystack, expected):
    assert should_update_vif(vif, haystack) == expected


def test_should_update_vif_not_found():
    vif = VIF(id="a", mac_address="m1", attached=True)
    assert should_update_vif(vif, [VIF(id="b", mac_address="m2")]) == (False, False)


def test_sort_networks_by_device_numeric():
    vifs = [VIF(device="10"), VIF(device="2"), VIF(device="0")]
    assert [v.device for v in sort_networks_by_device(vifs)] == ["0", "2", "10"]


def test_sort_network_maps_by_device_numeric():
    maps = [{"device": "3"}, {"device": "11"}, {"device": "1"}]
    assert [m["device"] for m in sort_network_maps_by_device(maps)] == ["1", "3", "11"]


def test_vifs_to_map_list_adds_guest_ips():
    vifs = [
        VIF(device="1", network="n1", mac_address="02:00:00:00:00:02", attached=False),
        VIF(device="0", network="n0", mac_address="02:00:00:00:00:01", attached=True),
    ]
    guest = [{"ipv4": [IPV4], "ipv6": [IPV6]}]
    result = vifs_to_map_list(vifs, guest)
    assert result == [
        {
            "attached": True,
            "device": "0",
            "mac_address": "02:00:00:00:00:01",
            "network_id": "n0",
            "ipv4_addresses": [IPV4],
            "ipv6_addresses": [IPV6],
        },
        {
            "attached": False,
            "device": "1",
            "mac_address": "02:00:00:00:00:02",
            "network_id": "n1",
            "ipv4_addresses": [],
            "ipv6_addresses": [],
        },
    ]


def test_expand_networks_formats_mac():
    blocks = [
        {"attached": True, "device": "0", "network_id": "net", "mac_address": "02-00-00-00-00-0A"},
        {"attached": False, "device": "1", "network_id": "net2", "mac_address": ""},
    ]
    assert expand_networks(blocks) == [
        VIF(attached=True, device="0", network="net", mac_address="02:00:00:00:00:0a"),
        VIF(attached=False, device="1", network="net2", mac_address=""),
    ]