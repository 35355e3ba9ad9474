from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import replace

from speechsession.domain.constants import (
    AMR_SAMPLE_RATE,
    AMR_WB_SAMPLE_RATE,
    DEFAULT_LANGUAGE_CODE,
    DEFAULT_URI_SCHEMES,
    MAX_ALTERNATIVES_LIMIT,
    MAX_PHRASE_CHARS,
    MAX_PHRASES,
    MAX_SAMPLE_RATE,
    MIN_SAMPLE_RATE,
)
from speechsession.domain.exceptions import InvalidConfig
from speechsession.domain.types import AudioEncoding, DeliveryMode, SessionConfig
from speechsession.domain.uris import parse_object_uri

_LANGUAGE_TAG = re.compile(r"^[A-Za-z]{2,3}(-[A-Za-z0-9]{1,8})*$")

_FIXED_RATES = {
    AudioEncoding.AMR: AMR_SAMPLE_RATE,
    AudioEncoding.AMR_WB: AMR_WB_SAMPLE_RATE,
}


def validate_session_config(
    config: SessionConfig,
    mode: DeliveryMode,
    allowed_uri_schemes: Iterable[str] = DEFAULT_URI_SCHEMES,
) -> SessionConfig:
    if config.encoding == AudioEncoding.ENCODING_UNSPECIFIED:
        raise InvalidConfig("encoding must be specified")

    if not MIN_SAMPLE_RATE <= config.sample_rate <= MAX_SAMPLE_RATE:
        raise InvalidConfig(
            f"sample_rate must be between {MIN_SAMPLE_RATE} and {MAX_SAMPLE_RATE} Hz, got {config.sample_rate}"
        )

    fixed_rate = _FIXED_RATES.get(config.encoding)
    if fixed_rate is not None and config.sample_rate != fixed_rate:
        raise InvalidConfig(f"{config.encoding.name} requires sample_rate {fixed_rate}, got {config.sample_rate}")

    if not 0 <= config.max_alternatives <= MAX_ALTERNATIVES_LIMIT:
        raise InvalidConfig(
            f"max_alternatives must be between 0 and {MAX_ALTERNATIVES_LIMIT}, got {config.max_alternatives}"
        )

    if len(config.phrases) > MAX_PHRASES:
        raise InvalidConfig(f"at most {MAX_PHRASES} phrases are allowed, got {len(config.phrases)}")
    for phrase in config.phrases:
        if len(phrase) > MAX_PHRASE_CHARS:
            raise InvalidConfig(f"phrase exceeds {MAX_PHRASE_CHARS} characters: {phrase[:20]!r}...")

    language_code = config.language_code or DEFAULT_LANGUAGE_CODE
    if not _LANGUAGE_TAG.match(language_code):
        raise InvalidConfig(f"language_code {language_code!r} is not a BCP-47 language tag")

    if config.output_uri:
        if mode is DeliveryMode.STREAMING:
            raise InvalidConfig("output_uri is only supported for non-streaming recognition")
        try:
            parse_object_uri(config.output_uri, allowed_uri_schemes)
        except ValueError as e:
            raise InvalidConfig(str(e)) from e

    return replace(config, language_code=language_code, output_uri=config.output_uri or None)
