"""
mitmca.profiles
~~~~~~~~~~~~~~~
Subject/issuer attributes and X.509 extension sets for the root CA and
for server (leaf) certificates.  Pure data: no I/O, no randomness.

The templates are built once at import time and are immutable.
"""

from __future__ import annotations

import ipaddress
import re
import warnings
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence, Tuple

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID, ObjectIdentifier

NS_CERT_TYPE_OID = ObjectIdentifier("2.16.840.1.113730.1.1")

# Bit order of the Netscape certificate type BIT STRING.
_NS_CERT_TYPE_BITS = (
    "client",
    "server",
    "email",
    "objsign",
    "reserved",
    "sslCA",
    "emailCA",
    "objCA",
)

_IP_LITERAL = re.compile(r"^[\d.]+$")


@dataclass(frozen=True, slots=True)
class Attr:
    oid: ObjectIdentifier
    value: str


_ORG_ATTRS: Tuple[Attr, ...] = (
    Attr(NameOID.COUNTRY_NAME, "Internet"),
    Attr(NameOID.STATE_OR_PROVINCE_NAME, "Internet"),
    Attr(NameOID.LOCALITY_NAME, "Internet"),
    Attr(NameOID.ORGANIZATION_NAME, "Node MITM Proxy CA"),
)

CA_ATTRS: Tuple[Attr, ...] = (
    Attr(NameOID.COMMON_NAME, "NodeMITMProxyCA"),
    *_ORG_ATTRS,
    Attr(NameOID.ORGANIZATIONAL_UNIT_NAME, "CA"),
)

SERVER_ATTRS: Tuple[Attr, ...] = (
    *_ORG_ATTRS,
    Attr(NameOID.ORGANIZATIONAL_UNIT_NAME, "Node MITM Proxy Server Certificate"),
)


def ns_cert_type(**roles: bool) -> x509.UnrecognizedExtension:
    """DER-encode a Netscape certificate type extension.

    Trailing zero bits are counted as unused, as DER requires for named
    bit lists.
    """
    unknown = set(roles) - set(_NS_CERT_TYPE_BITS)
    if unknown:
        raise ValueError(f"unknown nsCertType roles: {sorted(unknown)}")

    bits = 0
    unused = 0
    for i, name in enumerate(_NS_CERT_TYPE_BITS):
        if roles.get(name):
            bits |= 0x80 >> i
            unused = 7 - i
    if not bits:
        der = bytes([0x03, 0x01, 0x00])
    else:
        der = bytes([0x03, 0x02, unused, bits])
    return x509.UnrecognizedExtension(NS_CERT_TYPE_OID, der)


# (extension, critical) pairs; the subjectKeyIdentifier is appended per key.
CA_EXTENSIONS: Tuple[Tuple[x509.ExtensionType, bool], ...] = (
    (x509.BasicConstraints(ca=True, path_length=None), True),
    (
        x509.KeyUsage(
            digital_signature=True,
            content_commitment=True,  # nonRepudiation
            key_encipherment=True,
            data_encipherment=True,
            key_agreement=False,
            key_cert_sign=True,
            crl_sign=False,
            encipher_only=False,
            decipher_only=False,
        ),
        False,
    ),
    (
        x509.ExtendedKeyUsage(
            [
                ExtendedKeyUsageOID.SERVER_AUTH,
                ExtendedKeyUsageOID.CLIENT_AUTH,
                ExtendedKeyUsageOID.CODE_SIGNING,
                ExtendedKeyUsageOID.EMAIL_PROTECTION,
                ExtendedKeyUsageOID.TIME_STAMPING,
            ]
        ),
        False,
    ),
    (
        ns_cert_type(
            client=True,
            server=True,
            email=True,
            objsign=True,
            sslCA=True,
            emailCA=True,
            objCA=True,
        ),
        False,
    ),
)

SERVER_EXTENSIONS: Tuple[Tuple[x509.ExtensionType, bool], ...] = (
    # critical here too, unlike the non-critical basicConstraints forge emits
    (x509.BasicConstraints(ca=False, path_length=None), True),
    (
        x509.KeyUsage(
            digital_signature=True,
            content_commitment=False,
            key_encipherment=True,
            data_encipherment=True,
            key_agreement=False,
            key_cert_sign=False,
            crl_sign=False,
            encipher_only=False,
            decipher_only=False,
        ),
        False,
    ),
    (
        x509.ExtendedKeyUsage(
            [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
        ),
        False,
    ),
    (ns_cert_type(client=True, server=True), False),
)


def to_name(attrs: Iterable[Attr]) -> x509.Name:
    """Build an x509.Name, keeping values verbatim.

    The fixed identity uses "Internet" as country name, and host names
    can exceed 64 characters; neither is rejected here.
    """
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        return x509.Name(
            [x509.NameAttribute(a.oid, a.value, _validate=False) for a in attrs]
        )


def alt_name(host: str) -> x509.GeneralName:
    if _IP_LITERAL.match(host):
        try:
            return x509.IPAddress(ipaddress.ip_address(host))
        except ValueError:
            pass  # dotted but not an address, e.g. "1.2.3"
    return x509.DNSName(host)


def build_ca_request(
    public_key: RSAPublicKey,
) -> Tuple[x509.Name, x509.Name, list[Tuple[x509.ExtensionType, bool]]]:
    subject = to_name(CA_ATTRS)
    extensions = list(CA_EXTENSIONS)
    extensions.append((x509.SubjectKeyIdentifier.from_public_key(public_key), False))
    return subject, subject, extensions


def build_server_request(
    hosts: Sequence[str],
    public_key: RSAPublicKey,
) -> Tuple[x509.Name, list[Tuple[x509.ExtensionType, bool]]]:
    subject = to_name((Attr(NameOID.COMMON_NAME, hosts[0]), *SERVER_ATTRS))
    extensions = list(SERVER_EXTENSIONS)
    extensions.append((x509.SubjectKeyIdentifier.from_public_key(public_key), False))
    extensions.append(
        (x509.SubjectAlternativeName([alt_name(h) for h in hosts]), False)
    )
    return subject, extensions


def validity_window(
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """Return (not_before, not_after).

    not_before is one day in the past for clients with lagging clocks;
    not_after is the same calendar date and time one year later.
    """
    now = now or datetime.now(timezone.utc)
    not_before = now.replace(microsecond=0) - timedelta(days=1)
    try:
        not_after = not_before.replace(year=not_before.year + 1)
    except ValueError:  # Feb 29
        not_after = not_before.replace(year=not_before.year + 1, day=28)
    return not_before, not_after
