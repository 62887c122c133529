#!/usr/bin/env python3
"""
gpp_config.py - Decoder options

Usage:
    from gpp_config import DecodeOptions

    options = DecodeOptions(strict_padding=True)
    options = DecodeOptions.from_env()    # GPP_STRICT_PADDING, GPP_STRICT_SECTIONS,
                                          # GPP_STRICT_RESTRICTIONS
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


TRUE_VALUES = ('1', 'true', 'yes', 'on')


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in TRUE_VALUES


@dataclass(frozen=True)
class DecodeOptions:
    """
    strict_padding       non-zero trailing bits raise InvalidPadding instead
                         of being ignored
    strict_sections      unknown section IDs raise UnknownSectionId instead of
                         being kept as RawSection
    strict_restrictions  TCF publisher restrictions cut off by the end of the
                         core segment raise TruncatedInput instead of being
                         dropped
    """
    strict_padding: bool = False
    strict_sections: bool = False
    strict_restrictions: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'DecodeOptions':
        env = os.environ if env is None else env
        return cls(
            strict_padding=_env_flag(env, 'GPP_STRICT_PADDING', False),
            strict_sections=_env_flag(env, 'GPP_STRICT_SECTIONS', False),
            strict_restrictions=_env_flag(env, 'GPP_STRICT_RESTRICTIONS', False),
        )


STRICT = DecodeOptions(strict_padding=True, strict_sections=True, strict_restrictions=True)
