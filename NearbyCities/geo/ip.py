"""IPv4 address helpers for IP2Location range lookups."""

import ipaddress
from typing import Union

from NearbyCities.exceptions import ValidationError

PRIVATE_IPV4_NETWORKS = (
    ipaddress.IPv4Network('10.0.0.0/8'),
    ipaddress.IPv4Network('172.16.0.0/12'),
    ipaddress.IPv4Network('192.168.0.0/16'),
)


def parse_ipv4(address: Union[str, ipaddress.IPv4Address]) -> ipaddress.IPv4Address:
    """
    Parse an IPv4 address, accepting IPv4-mapped IPv6 notation (``::ffff:a.b.c.d``).

    Raises:
        ValidationError: If the value is not an IPv4 address
    """
    if isinstance(address, ipaddress.IPv4Address):
        return address

    try:
        parsed = ipaddress.ip_address(str(address).strip())
    except ValueError as e:
        raise ValidationError(
            message=f"Invalid IP address: {address!r}",
            user_message="The IP address is not valid.",
            context={"ip": address}
        ) from e

    if isinstance(parsed, ipaddress.IPv6Address):
        if parsed.ipv4_mapped is None:
            raise ValidationError(
                message=f"Not an IPv4 address: {address}",
                user_message="Only IPv4 addresses can be located.",
                context={"ip": address}
            )
        parsed = parsed.ipv4_mapped

    return parsed


def ip_to_integer(address: Union[str, ipaddress.IPv4Address]) -> int:
    """
    Convert an IPv4 address to its big-endian 32-bit integer value.

    Example:
        >>> ip_to_integer('1.2.3.4')
        16909060
    """
    return int(parse_ipv4(address))


def is_private_ip(address: Union[str, ipaddress.IPv4Address]) -> bool:
    """True for addresses in 10.0.0.0/8, 172.16.0.0/12 or 192.168.0.0/16."""
    parsed = parse_ipv4(address)
    return any(parsed in network for network in PRIVATE_IPV4_NETWORKS)
