#!/usr/bin/env python3
"""
sections.py - Immutable section models for decoded GPP strings

A decoded section is one of a closed set of frozen dataclasses, one per
section this codec models, plus RawSection for identifiers it does not.
RawSection keeps the original wire segment so that encoding reproduces it
byte-for-byte.

Field names match the segment schemas in section_schemas.py; the section
codecs move values between the two with plain keyword construction.
"""

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, ClassVar, Dict, FrozenSet, Optional, Tuple, Union

from field_codec import EPOCH, BitfieldIds, PublisherRestriction, VendorSet


def field_values(obj: Any, exclude: Tuple[str, ...] = ()) -> Dict[str, Any]:
    """Shallow field dict of a dataclass instance (nested values untouched)."""
    return {f.name: getattr(obj, f.name) for f in fields(obj) if f.name not in exclude}


# =============================================================================
# TCF EU v2
# =============================================================================

@dataclass(frozen=True)
class TcfEuV2Core:
    version: int = 2
    created: datetime = EPOCH
    last_updated: datetime = EPOCH
    cmp_id: int = 0
    cmp_version: int = 0
    consent_screen: int = 0
    consent_language: str = 'EN'
    vendor_list_version: int = 0
    policy_version: int = 4
    is_service_specific: bool = False
    use_non_standard_stacks: bool = False
    special_feature_optins: FrozenSet[int] = frozenset()
    purpose_consents: FrozenSet[int] = frozenset()
    purpose_legitimate_interests: FrozenSet[int] = frozenset()
    purpose_one_treatment: bool = False
    publisher_country_code: str = 'AA'
    vendor_consents: VendorSet = BitfieldIds()
    vendor_legitimate_interests: VendorSet = BitfieldIds()
    publisher_restrictions: Tuple[PublisherRestriction, ...] = ()


@dataclass(frozen=True)
class PublisherPurposes:
    """Publisher TC segment of TCF EU v2."""
    consents: FrozenSet[int] = frozenset()
    legitimate_interests: FrozenSet[int] = frozenset()
    num_custom_purposes: int = 0
    custom_consents: FrozenSet[int] = frozenset()
    custom_legitimate_interests: FrozenSet[int] = frozenset()


@dataclass(frozen=True)
class TcfEuV2:
    section_id: ClassVar[int] = 2
    section_name: ClassVar[str] = 'tcfeuv2'

    core: TcfEuV2Core = TcfEuV2Core()
    disclosed_vendors: Optional[VendorSet] = None
    allowed_vendors: Optional[VendorSet] = None
    publisher_purposes: Optional[PublisherPurposes] = None

    @property
    def cmp_id(self) -> int:
        return self.core.cmp_id

    def has_purpose_consent(self, purpose_id: int) -> bool:
        return purpose_id in self.core.purpose_consents

    def has_vendor_consent(self, vendor_id: int) -> bool:
        return vendor_id in self.core.vendor_consents

    def has_vendor_legitimate_interest(self, vendor_id: int) -> bool:
        return vendor_id in self.core.vendor_legitimate_interests


# =============================================================================
# TCF CA v1
# =============================================================================

@dataclass(frozen=True)
class TcfCaV1Core:
    version: int = 1
    created: datetime = EPOCH
    last_updated: datetime = EPOCH
    cmp_id: int = 0
    cmp_version: int = 0
    consent_screen: int = 0
    consent_language: str = 'EN'
    vendor_list_version: int = 0
    policy_version: int = 0
    use_non_standard_stacks: bool = False
    special_feature_express_consents: FrozenSet[int] = frozenset()
    purpose_express_consents: FrozenSet[int] = frozenset()
    purpose_implied_consents: FrozenSet[int] = frozenset()
    vendor_express_consents: VendorSet = BitfieldIds()
    vendor_implied_consents: VendorSet = BitfieldIds()
    pub_restrictions: Tuple[PublisherRestriction, ...] = ()


@dataclass(frozen=True)
class TcfCaV1PublisherPurposes:
    purpose_express_consents: FrozenSet[int] = frozenset()
    purpose_implied_consents: FrozenSet[int] = frozenset()
    num_custom_purposes: int = 0
    custom_purpose_express_consents: FrozenSet[int] = frozenset()
    custom_purpose_implied_consents: FrozenSet[int] = frozenset()


@dataclass(frozen=True)
class TcfCaV1:
    section_id: ClassVar[int] = 5
    section_name: ClassVar[str] = 'tcfcav1'

    core: TcfCaV1Core = TcfCaV1Core()
    disclosed_vendors: Optional[VendorSet] = None
    publisher_purposes: Optional[TcfCaV1PublisherPurposes] = None


# =============================================================================
# US Privacy (CCPA) v1
# =============================================================================

@dataclass(frozen=True)
class UspV1:
    """
    Four characters: version, explicit notice, opt-out of sale, LSPA covered.

    Flags are 'Y', 'N' or '-' (not applicable). "1YNN" = notice given,
    not opted out, not an LSPA covered transaction.
    """
    section_id: ClassVar[int] = 6
    section_name: ClassVar[str] = 'uspv1'

    version: int = 1
    notice: str = '-'
    opt_out_sale: str = '-'
    lspa_covered: str = '-'

    def has_opted_out(self) -> bool:
        return self.opt_out_sale == 'Y'


# =============================================================================
# US state and national sections
# =============================================================================
# Two-bit fields: 0 = not applicable, 1 = yes/opted out, 2 = no/did not opt out.

@dataclass(frozen=True)
class UsNat:
    section_id: ClassVar[int] = 7
    section_name: ClassVar[str] = 'usnat'

    version: int = 1
    sharing_notice: int = 0
    sale_opt_out_notice: int = 0
    sharing_opt_out_notice: int = 0
    targeted_advertising_opt_out_notice: int = 0
    sensitive_data_processing_opt_out_notice: int = 0
    sensitive_data_limit_use_notice: int = 0
    sale_opt_out: int = 0
    sharing_opt_out: int = 0
    targeted_advertising_opt_out: int = 0
    sensitive_data_processing: Tuple[int, ...] = (0,) * 12
    known_child_sensitive_data_consents: Tuple[int, ...] = (0, 0)
    personal_data_consents: int = 0
    mspa_covered_transaction: int = 0
    mspa_opt_out_option_mode: int = 0
    mspa_service_provider_mode: int = 0
    gpc: Optional[bool] = None


@dataclass(frozen=True)
class UsCa:
    section_id: ClassVar[int] = 8
    section_name: ClassVar[str] = 'usca'

    version: int = 1
    sale_opt_out_notice: int = 0
    sharing_opt_out_notice: int = 0
    sensitive_data_limit_use_notice: int = 0
    sale_opt_out: int = 0
    sharing_opt_out: int = 0
    sensitive_data_processing: Tuple[int, ...] = (0,) * 9
    known_child_sensitive_data_consents: Tuple[int, ...] = (0, 0)
    personal_data_consents: int = 0
    mspa_covered_transaction: int = 0
    mspa_opt_out_option_mode: int = 0
    mspa_service_provider_mode: int = 0
    gpc: Optional[bool] = None


@dataclass(frozen=True)
class UsVa:
    section_id: ClassVar[int] = 9
    section_name: ClassVar[str] = 'usva'

    version: int = 1
    sharing_notice: int = 0
    sale_opt_out_notice: int = 0
    targeted_advertising_opt_out_notice: int = 0
    sale_opt_out: int = 0
    targeted_advertising_opt_out: int = 0
    sensitive_data_processing: Tuple[int, ...] = (0,) * 8
    known_child_sensitive_data_consents: int = 0
    mspa_covered_transaction: int = 0
    mspa_opt_out_option_mode: int = 0
    mspa_service_provider_mode: int = 0


@dataclass(frozen=True)
class UsCo:
    section_id: ClassVar[int] = 10
    section_name: ClassVar[str] = 'usco'

    version: int = 1
    sharing_notice: int = 0
    sale_opt_out_notice: int = 0
    targeted_advertising_opt_out_notice: int = 0
    sale_opt_out: int = 0
    targeted_advertising_opt_out: int = 0
    sensitive_data_processing: Tuple[int, ...] = (0,) * 7
    known_child_sensitive_data_consents: int = 0
    mspa_covered_transaction: int = 0
    mspa_opt_out_option_mode: int = 0
    mspa_service_provider_mode: int = 0
    gpc: Optional[bool] = None


@dataclass(frozen=True)
class UsUt:
    section_id: ClassVar[int] = 11
    section_name: ClassVar[str] = 'usut'

    version: int = 1
    sharing_notice: int = 0
    sale_opt_out_notice: int = 0
    targeted_advertising_opt_out_notice: int = 0
    sensitive_data_processing_opt_out_notice: int = 0
    sale_opt_out: int = 0
    targeted_advertising_opt_out: int = 0
    sensitive_data_processing: Tuple[int, ...] = (0,) * 8
    known_child_sensitive_data_consents: int = 0
    mspa_covered_transaction: int = 0
    mspa_opt_out_option_mode: int = 0
    mspa_service_provider_mode: int = 0


@dataclass(frozen=True)
class UsCt:
    section_id: ClassVar[int] = 12
    section_name: ClassVar[str] = 'usct'

    version: int = 1
    sharing_notice: int = 0
    sale_opt_out_notice: int = 0
    targeted_advertising_opt_out_notice: int = 0
    sale_opt_out: int = 0
    targeted_advertising_opt_out: int = 0
    sensitive_data_processing: Tuple[int, ...] = (0,) * 8
    known_child_sensitive_data_consents: Tuple[int, ...] = (0, 0, 0)
    mspa_covered_transaction: int = 0
    mspa_opt_out_option_mode: int = 0
    mspa_service_provider_mode: int = 0
    gpc: Optional[bool] = None


# =============================================================================
# Unknown sections
# =============================================================================

@dataclass(frozen=True)
class RawSection:
    """A section whose identifier is not modelled; ``segment`` is kept verbatim."""
    section_id: int
    segment: str

    @property
    def section_name(self) -> str:
        return f"section_{self.section_id}"


Section = Union[TcfEuV2, TcfCaV1, UspV1, UsNat, UsCa, UsVa, UsCo, UsUt, UsCt, RawSection]

KNOWN_SECTIONS = (TcfEuV2, TcfCaV1, UspV1, UsNat, UsCa, UsVa, UsCo, UsUt, UsCt)
