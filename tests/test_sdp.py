"""Tests for SDP bandwidth rewriting."""

import pytest

from sendrecv.sdp import DEFAULT_BITRATE_KBPS, DEFAULT_MEDIA, set_media_bitrate


OFFER = (
    "v=0\n"
    "o=- 3849340209 3849340209 IN IP4 0.0.0.0\n"
    "s=-\n"
    "t=0 0\n"
    "m=audio 9 UDP/TLS/RTP/SAVPF 96\n"
    "c=IN IP4 0.0.0.0\n"
    "a=rtpmap:96 opus/48000/2\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 97\n"
    "i=camera\n"
    "c=IN IP4 0.0.0.0\n"
    "a=rtpmap:97 VP8/90000\n"
    "a=sendrecv\n"
)


def section(sdp: str, media: str) -> list[str]:
    """Lines of the first m=<media> section, media line included."""
    lines = sdp.split("\n")
    start = next(i for i, line in enumerate(lines) if line.startswith(f"m={media}"))
    end = next(
        (i for i in range(start + 1, len(lines)) if lines[i].startswith("m=")),
        len(lines),
    )
    return lines[start:end]


class TestInsertionPoint:
    """Tests for where the bandwidth line goes."""

    def test_inserted_after_connection_line(self):
        """b=AS follows i= and c= and precedes a=."""
        result = set_media_bitrate(OFFER, "video", 500)

        video = section(result, "video")
        assert video[:5] == [
            "m=video 9 UDP/TLS/RTP/SAVPF 97",
            "i=camera",
            "c=IN IP4 0.0.0.0",
            "b=AS:500",
            "a=rtpmap:97 VP8/90000",
        ]

    def test_inserted_directly_after_media_line(self):
        """Without i=/c= lines the b= line follows the m= line."""
        sdp = "v=0\nm=video 9 RTP/AVP 97\na=rtpmap:97 VP8/90000\n"

        result = set_media_bitrate(sdp, "video", 300)

        assert result == "v=0\nm=video 9 RTP/AVP 97\nb=AS:300\na=rtpmap:97 VP8/90000\n"

    def test_media_line_last(self):
        """A media line at the end of the text gets the b= line appended."""
        result = set_media_bitrate("v=0\nm=video 9 RTP/AVP 97", "video", 500)

        assert result == "v=0\nm=video 9 RTP/AVP 97\nb=AS:500\n"

    def test_existing_bandwidth_line_replaced(self):
        """An existing b= line at the insertion point is replaced in place."""
        sdp = "v=0\nm=video 9 RTP/AVP 97\nc=IN IP4 0.0.0.0\nb=TIAS:2000000\na=x\n"

        result = set_media_bitrate(sdp, "video", 500)

        assert result == "v=0\nm=video 9 RTP/AVP 97\nc=IN IP4 0.0.0.0\nb=AS:500\na=x\n"

    def test_only_requested_media_section_changes(self):
        """The audio section is left alone when video is limited."""
        result = set_media_bitrate(OFFER, "video", 500)

        assert section(result, "audio") == section(OFFER, "audio")
        assert result.count("b=AS:") == 1

    def test_only_first_matching_section(self):
        """Only the first m=video section is rewritten."""
        sdp = "v=0\nm=video 9 RTP/AVP 97\na=x\nm=video 9 RTP/AVP 98\na=y\n"

        result = set_media_bitrate(sdp, "video", 500)

        assert result == "v=0\nm=video 9 RTP/AVP 97\nb=AS:500\na=x\nm=video 9 RTP/AVP 98\na=y\n"

    def test_audio_media(self):
        """Any media label can be limited."""
        result = set_media_bitrate(OFFER, "audio", 64)

        assert section(result, "audio")[2] == "b=AS:64"


class TestIdempotence:
    """Tests for repeated rewrites."""

    def test_rewrite_twice_single_bandwidth_line(self):
        """Rewriting again keeps exactly one b=AS line in the section."""
        once = set_media_bitrate(OFFER, "video", 500)
        twice = set_media_bitrate(once, "video", 500)

        assert twice == once
        assert [line for line in section(twice, "video") if line.startswith("b=")] == [
            "b=AS:500"
        ]

    def test_rewrite_with_new_bitrate_replaces(self):
        """A second rewrite with another bitrate replaces the first."""
        once = set_media_bitrate(OFFER, "video", 500)
        again = set_media_bitrate(once, "video", 1000)

        assert "b=AS:500" not in again
        assert again.count("b=AS:1000") == 1


class TestNoOp:
    """Tests for descriptions without the media section."""

    def test_missing_media_returns_input(self):
        """Text without the media type is returned unchanged."""
        sdp = "v=0\nm=audio 9 RTP/AVP 96\na=rtpmap:96 opus/48000/2\n\n"

        assert set_media_bitrate(sdp, "video", 500) is sdp

    def test_empty_text(self):
        """Empty input is returned unchanged."""
        assert set_media_bitrate("", "video", 500) == ""


class TestLineHandling:
    """Tests for reconstruction of the text."""

    def test_blank_lines_dropped(self):
        """Blank lines are dropped and every line is terminated."""
        sdp = "v=0\n\nm=video 9 RTP/AVP 97\n\na=x"

        result = set_media_bitrate(sdp, "video", 500)

        assert result == "v=0\nm=video 9 RTP/AVP 97\nb=AS:500\na=x\n"

    def test_crlf_preserved(self):
        """CRLF descriptions keep CRLF terminators."""
        sdp = "v=0\r\nm=video 9 RTP/AVP 97\r\nc=IN IP4 0.0.0.0\r\na=x\r\n"

        result = set_media_bitrate(sdp, "video", 500)

        assert result == "v=0\r\nm=video 9 RTP/AVP 97\r\nc=IN IP4 0.0.0.0\r\nb=AS:500\r\na=x\r\n"

    def test_other_lines_untouched(self):
        """Apart from the inserted line, content and order are preserved."""
        result = set_media_bitrate(OFFER, "video", 500)

        remaining = [line for line in result.split("\n") if line != "b=AS:500"]
        assert remaining == OFFER.split("\n")


@pytest.mark.parametrize("bitrate", [1, 500, 2500])
def test_default_policy(bitrate):
    """The default policy limits video."""
    assert DEFAULT_MEDIA == "video"
    assert DEFAULT_BITRATE_KBPS == 500
    assert f"b=AS:{bitrate}" in set_media_bitrate(OFFER, DEFAULT_MEDIA, bitrate)
