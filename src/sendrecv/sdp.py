"""SDP bandwidth rewriting.

Limits the bitrate of one media section by inserting (or replacing) a
``b=AS:<kbps>`` line. See https://webrtchacks.com/limit-webrtc-bandwidth-sdp/
"""

# Media type and ceiling applied to every description we send.
DEFAULT_MEDIA = "video"
DEFAULT_BITRATE_KBPS = 500


def _line_terminator(sdp: str) -> str:
    """Return the line terminator used by an SDP blob."""
    return "\r\n" if "\r\n" in sdp else "\n"


def set_media_bitrate(sdp: str, media: str, bitrate: int) -> str:
    """Set the application-specific bandwidth of a media section.

    Only the first ``m=<media>`` section is touched. Within it, ``b=`` lines
    must follow any ``i=`` and ``c=`` lines, so the new line goes to the first
    line after the media line that is neither. If that line is already a
    bandwidth line it is replaced.

    Args:
        sdp: Session description text.
        media: Media type label, e.g. "video" or "audio".
        bitrate: Ceiling in kbps.

    Returns:
        The rewritten description with blank lines dropped and every line
        terminated, or ``sdp`` unchanged if there is no such media section.
    """
    terminator = _line_terminator(sdp)
    lines = sdp.split(terminator)

    media_prefix = f"m={media}"
    media_index = next(
        (i for i, line in enumerate(lines) if line.startswith(media_prefix)), None
    )
    if media_index is None:
        return sdp

    index = media_index + 1
    while index < len(lines) and lines[index].startswith(("i=", "c=")):
        index += 1

    b_line = f"b=AS:{bitrate}"
    if index < len(lines) and lines[index].startswith("b"):
        lines[index] = b_line
    else:
        lines.insert(index, b_line)

    return "".join(line + terminator for line in lines if line)
