"""
Provisioning profile (embedded.mobileprovision) extraction.

A profile is a BER-encoded CMS ContentInfo wrapping SignedData whose
encapsulated content is an XML plist. The structure is decoded in memory with
pyasn1 against the RFC 5652 schema, with the content typed as SignedData so
indefinite-length encodings decode. Certificates and signer infos are only
counted for logging; the signature is never verified.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pyasn1.codec.ber import decoder as ber_decoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import namedtype, tag, univ
from pyasn1_modules import rfc5652

from ..core.exceptions import MalformedPlistError, MalformedProvisioningProfileError
from ..core.logging import get_logger
from ..models.app import IosDistributionInfo, IosDistributionType, ProvisioningProfilePayload
from .plist import decode_plist_dict

logger = get_logger(__name__)


class SignedContentInfo(univ.Sequence):
    """ContentInfo whose [0] content is typed as SignedData.

    The RFC 5652 schema leaves content as an open type, which loses the
    end-of-content octets of an indefinite-length wrapper.
    """

    componentType = namedtype.NamedTypes(
        namedtype.NamedType("contentType", rfc5652.ContentType()),
        namedtype.NamedType(
            "content",
            rfc5652.SignedData().subtype(
                explicitTag=tag.Tag(tag.tagClassContext, tag.tagFormatConstructed, 0)
            ),
        ),
    )


def extract_signed_content(data: bytes) -> bytes:
    """Return the encapsulated content of a CMS SignedData blob.

    Raises:
        MalformedProvisioningProfileError: If the ASN.1 structure is invalid, is
            not signed-data, or carries no embedded content.
    """
    try:
        content_info, _ = ber_decoder.decode(data, asn1Spec=SignedContentInfo())
    except (PyAsn1Error, ValueError, TypeError) as e:
        raise MalformedProvisioningProfileError(message=f"Invalid CMS structure: {e}", cause=e) from e

    if content_info["contentType"] != rfc5652.id_signedData:
        raise MalformedProvisioningProfileError(
            message=f"CMS content type is {content_info['contentType']}, expected signed data",
        )
    signed_data = content_info["content"]
    certificates = signed_data["certificates"]
    logger.debug(
        "Read CMS signed data (signature not verified)",
        certificates=len(certificates) if certificates.isValue else 0,
        signers=len(signed_data["signerInfos"]),
    )
    content = signed_data["encapContentInfo"]["eContent"]
    if not content.isValue:
        raise MalformedProvisioningProfileError(
            message="Signed data has no embedded content (detached signature)",
        )
    return content.asOctets()


def _string_list(value: Any, key: str) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise MalformedProvisioningProfileError(message=f"{key} is not an array of strings")
    return value


def parse_profile(data: bytes) -> ProvisioningProfilePayload:
    """Decode a provisioning profile into its payload fields.

    Args:
        data: Raw embedded.mobileprovision bytes.

    Returns:
        The payload with optional fields left as None when absent.

    Raises:
        MalformedProvisioningProfileError: On ASN.1 or plist decode failure.
    """
    content = extract_signed_content(data)
    try:
        plist = decode_plist_dict(content)
    except MalformedPlistError as e:
        raise MalformedProvisioningProfileError(message="Embedded plist is invalid", cause=e) from e

    all_devices = plist.get("ProvisionsAllDevices")
    expiration = plist.get("ExpirationDate")
    return ProvisioningProfilePayload(
        team_name=str(plist.get("TeamName", "")),
        provisioned_devices=_string_list(plist.get("ProvisionedDevices"), "ProvisionedDevices"),
        provisions_all_devices=bool(all_devices) if all_devices is not None else None,
        name=plist.get("Name") if isinstance(plist.get("Name"), str) else None,
        uuid=plist.get("UUID") if isinstance(plist.get("UUID"), str) else None,
        team_identifiers=_string_list(plist.get("TeamIdentifier"), "TeamIdentifier") or [],
        app_id_name=plist.get("AppIDName") if isinstance(plist.get("AppIDName"), str) else None,
        expiration_date=expiration if isinstance(expiration, datetime) else None,
    )


def classify_profile(payload: ProvisioningProfilePayload) -> IosDistributionInfo:
    """Derive the distribution type from a profile payload.

    The checks run in a fixed order and later ones win: App Store by default,
    Ad Hoc when a device list is present, Enterprise when ProvisionsAllDevices is
    present at all (its value is not inspected).
    """
    distribution = IosDistributionType.APP_STORE
    devices: list[str] = []
    if payload.provisioned_devices is not None:
        distribution = IosDistributionType.AD_HOC
        devices = list(payload.provisioned_devices)
    if payload.provisions_all_devices is not None:
        distribution = IosDistributionType.ENTERPRISE

    return IosDistributionInfo(
        type=distribution,
        team_name=payload.team_name,
        allowed_devices=devices,
        profile_name=payload.name,
        team_identifiers=payload.team_identifiers,
        expiration_date=payload.expiration_date,
    )


def read_distribution_info(data: bytes) -> IosDistributionInfo:
    """Parse and classify a provisioning profile in one step."""
    info = classify_profile(parse_profile(data))
    logger.debug("Classified provisioning profile", type=info.type.value, devices=len(info.allowed_devices))
    return info
