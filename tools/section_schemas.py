#!/usr/bin/env python3
"""
section_schemas.py - Segment layouts for the GPP sections this codec models

Each schema lists its fields in wire order. Widths follow the IAB GPP
specification for each section; the TCF layouts are shared with the
classic TC string.

Section IDs:
    2   tcfeuv2   TCF EU v2        (core + disclosed/allowed vendors + publisher TC)
    5   tcfcav1   TCF Canada v1    (core + disclosed vendors + publisher purposes)
    6   uspv1     US Privacy       (plain text, no schema)
    7   usnat     US National      (v1, v2; optional GPC subsection)
    8   usca      California       (optional GPC subsection)
    9   usva      Virginia
    10  usco      Colorado         (optional GPC subsection)
    11  usut      Utah
    12  usct      Connecticut      (optional GPC subsection)
"""

from typing import Any, Dict, List


def _uint(name: str, bits: int, **extra) -> Dict[str, Any]:
    return dict(name=name, type='uint', bits=bits, **extra)


def _notices(*names: str) -> List[Dict[str, Any]]:
    """Two-bit notice/opt-out fields (0 = n/a, 1 = yes, 2 = no)."""
    return [_uint(name, 2) for name in names]


def _segment_type(value: int) -> Dict[str, Any]:
    return _uint('segment_type', 3, const=value)


VERSION = _uint('version', 6)


# =============================================================================
# GPP header
# =============================================================================

GPP_HEADER_TYPE = 3

GPP_HEADER = {
    'name': 'header',
    'fields': [
        _uint('type', 6),
        _uint('version', 6),
        {'name': 'section_ids', 'type': 'fibonacci_range'},
    ],
}


# =============================================================================
# TCF EU v2
# =============================================================================

TCF_EU_V2_CORE = {
    'name': 'core',
    'fields': [
        VERSION,
        {'name': 'created', 'type': 'datetime'},
        {'name': 'last_updated', 'type': 'datetime'},
        _uint('cmp_id', 12),
        _uint('cmp_version', 12),
        _uint('consent_screen', 6),
        {'name': 'consent_language', 'type': 'string', 'length': 2},
        _uint('vendor_list_version', 12),
        _uint('policy_version', 6),
        {'name': 'is_service_specific', 'type': 'bool'},
        {'name': 'use_non_standard_stacks', 'type': 'bool'},
        {'name': 'special_feature_optins', 'type': 'bitfield', 'length': 12},
        {'name': 'purpose_consents', 'type': 'bitfield', 'length': 24},
        {'name': 'purpose_legitimate_interests', 'type': 'bitfield', 'length': 24},
        {'name': 'purpose_one_treatment', 'type': 'bool'},
        {'name': 'publisher_country_code', 'type': 'string', 'length': 2},
        {'name': 'vendor_consents', 'type': 'optimized_range'},
        {'name': 'vendor_legitimate_interests', 'type': 'optimized_range'},
        {'name': 'publisher_restrictions', 'type': 'restrictions', 'drop_truncated': True},
    ],
}

TCF_EU_V2_DISCLOSED_VENDORS = {
    'name': 'disclosed_vendors',
    'fields': [
        _segment_type(1),
        {'name': 'vendors', 'type': 'optimized_range'},
    ],
}

TCF_EU_V2_ALLOWED_VENDORS = {
    'name': 'allowed_vendors',
    'fields': [
        _segment_type(2),
        {'name': 'vendors', 'type': 'optimized_range'},
    ],
}

TCF_EU_V2_PUBLISHER_TC = {
    'name': 'publisher_purposes',
    'fields': [
        _segment_type(3),
        {'name': 'consents', 'type': 'bitfield', 'length': 24},
        {'name': 'legitimate_interests', 'type': 'bitfield', 'length': 24},
        _uint('num_custom_purposes', 6),
        {'name': 'custom_consents', 'type': 'bitfield', 'length': '$num_custom_purposes'},
        {'name': 'custom_legitimate_interests', 'type': 'bitfield',
         'length': '$num_custom_purposes'},
    ],
}


# =============================================================================
# TCF CA v1
# =============================================================================

TCF_CA_V1_CORE = {
    'name': 'core',
    'fields': [
        VERSION,
        {'name': 'created', 'type': 'datetime'},
        {'name': 'last_updated', 'type': 'datetime'},
        _uint('cmp_id', 12),
        _uint('cmp_version', 12),
        _uint('consent_screen', 6),
        {'name': 'consent_language', 'type': 'string', 'length': 2},
        _uint('vendor_list_version', 12),
        _uint('policy_version', 6),
        {'name': 'use_non_standard_stacks', 'type': 'bool'},
        {'name': 'special_feature_express_consents', 'type': 'bitfield', 'length': 12},
        {'name': 'purpose_express_consents', 'type': 'bitfield', 'length': 24},
        {'name': 'purpose_implied_consents', 'type': 'bitfield', 'length': 24},
        {'name': 'vendor_express_consents', 'type': 'optimized_range'},
        {'name': 'vendor_implied_consents', 'type': 'optimized_range'},
        # Introduced in TCF CA v1.1; v1.0 strings end before it.
        {'name': 'pub_restrictions', 'type': 'restrictions',
         'optional_tail': True, 'min_bits': 12, 'drop_truncated': True},
    ],
}

TCF_CA_V1_DISCLOSED_VENDORS = {
    'name': 'disclosed_vendors',
    'fields': [
        _segment_type(1),
        {'name': 'vendors', 'type': 'optimized_fibonacci_range'},
    ],
}

TCF_CA_V1_PUBLISHER_PURPOSES = {
    'name': 'publisher_purposes',
    'fields': [
        _segment_type(3),
        {'name': 'purpose_express_consents', 'type': 'bitfield', 'length': 24},
        {'name': 'purpose_implied_consents', 'type': 'bitfield', 'length': 24},
        _uint('num_custom_purposes', 6),
        {'name': 'custom_purpose_express_consents', 'type': 'bitfield',
         'length': '$num_custom_purposes'},
        {'name': 'custom_purpose_implied_consents', 'type': 'bitfield',
         'length': '$num_custom_purposes'},
    ],
}


# =============================================================================
# US sections
# =============================================================================

def _us_core(notices: List[str], sensitive: int, known_child: int,
             personal_data: bool = False) -> Dict[str, Any]:
    fields = [VERSION]
    fields += _notices(*notices)
    fields.append({'name': 'sensitive_data_processing', 'type': 'int_list',
                   'length': sensitive, 'bits': 2})
    if known_child == 1:
        fields.append(_uint('known_child_sensitive_data_consents', 2))
    else:
        fields.append({'name': 'known_child_sensitive_data_consents', 'type': 'int_list',
                       'length': known_child, 'bits': 2})
    if personal_data:
        fields.append(_uint('personal_data_consents', 2))
    fields += _notices('mspa_covered_transaction', 'mspa_opt_out_option_mode',
                       'mspa_service_provider_mode')
    return {'name': 'core', 'fields': fields}


US_NAT_NOTICES = [
    'sharing_notice',
    'sale_opt_out_notice',
    'sharing_opt_out_notice',
    'targeted_advertising_opt_out_notice',
    'sensitive_data_processing_opt_out_notice',
    'sensitive_data_limit_use_notice',
    'sale_opt_out',
    'sharing_opt_out',
    'targeted_advertising_opt_out',
]

US_NAT_V1_CORE = _us_core(US_NAT_NOTICES, sensitive=12, known_child=2, personal_data=True)
US_NAT_V2_CORE = _us_core(US_NAT_NOTICES, sensitive=16, known_child=3, personal_data=True)

US_CA_CORE = _us_core([
    'sale_opt_out_notice',
    'sharing_opt_out_notice',
    'sensitive_data_limit_use_notice',
    'sale_opt_out',
    'sharing_opt_out',
], sensitive=9, known_child=2, personal_data=True)

US_VA_CORE = _us_core([
    'sharing_notice',
    'sale_opt_out_notice',
    'targeted_advertising_opt_out_notice',
    'sale_opt_out',
    'targeted_advertising_opt_out',
], sensitive=8, known_child=1)

US_CO_CORE = _us_core([
    'sharing_notice',
    'sale_opt_out_notice',
    'targeted_advertising_opt_out_notice',
    'sale_opt_out',
    'targeted_advertising_opt_out',
], sensitive=7, known_child=1)

US_UT_CORE = _us_core([
    'sharing_notice',
    'sale_opt_out_notice',
    'targeted_advertising_opt_out_notice',
    'sensitive_data_processing_opt_out_notice',
    'sale_opt_out',
    'targeted_advertising_opt_out',
], sensitive=8, known_child=1)

US_CT_CORE = _us_core([
    'sharing_notice',
    'sale_opt_out_notice',
    'targeted_advertising_opt_out_notice',
    'sale_opt_out',
    'targeted_advertising_opt_out',
], sensitive=8, known_child=3)

US_GPC_SUBSECTION = {
    'name': 'gpc',
    'fields': [
        _uint('subsection_type', 2, const=1),
        {'name': 'gpc', 'type': 'bool'},
    ],
}
