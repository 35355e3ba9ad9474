from __future__ import annotations

import pytest

from speechsession.domain.profanity import mask_profanity, mask_word
from speechsession.domain.uris import ObjectRef, parse_object_uri


class TestMaskProfanity:
    def test_mask_word(self):
        assert mask_word("damn") == "d***"
        assert mask_word("a") == "a"

    def test_masks_filtered_words_only(self):
        assert mask_profanity("well damn, that is crap") == "well d***, that is c***"

    def test_case_preserved_in_first_letter(self):
        assert mask_profanity("Shit happens") == "S*** happens"

    def test_whole_words_only(self):
        assert mask_profanity("classic assessment") == "classic assessment"

    def test_custom_word_list(self):
        assert mask_profanity("darn it", words=["darn"]) == "d*** it"
        assert mask_profanity("damn it", words=[]) == "damn it"


class TestParseObjectUri:
    def test_valid(self):
        ref = parse_object_uri("gs://bucket/path/to/audio.raw", ("gs",))

        assert ref == ObjectRef(scheme="gs", bucket="bucket", name="path/to/audio.raw")
        assert str(ref) == "gs://bucket/path/to/audio.raw"

    @pytest.mark.parametrize(
        "uri",
        ["gs://bucket", "gs://bucket/", "gs:///name", "gs://bucket/a?b=c", "gs://bucket/a#frag", "bucket/a"],
    )
    def test_invalid(self, uri):
        with pytest.raises(ValueError):
            parse_object_uri(uri, ("gs",))
