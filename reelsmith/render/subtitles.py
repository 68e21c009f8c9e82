"""SRT and ASS subtitle serializers."""

import math

from reelsmith.schemas.caption import CaptionSegment, CaptionStyle

FONT_SIZES = {"small": 18, "medium": 22, "large": 28}
ALIGNMENTS = {"top": 8, "center": 5, "bottom": 2}

DEFAULT_FONT = "Arial"
DEFAULT_COLOR = "#FFFFFF"
DEFAULT_BACKGROUND = "#000000"

ASS_STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, "
    "BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, "
    "BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding"
)
ASS_EVENT_FORMAT = "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"


def format_srt_time(seconds: float) -> str:
    """HH:MM:SS,mmm with milliseconds truncated."""
    total_ms = max(0, math.floor(seconds * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{ms:03d}"


def format_ass_time(seconds: float) -> str:
    """H:MM:SS.cc (centiseconds)."""
    total_cs = max(0, math.floor(seconds * 100))
    hours, rem = divmod(total_cs, 360_000)
    minutes, rem = divmod(rem, 6000)
    secs, cs = divmod(rem, 100)
    return f"{hours}:{minutes:02d}:{secs:02d}.{cs:02d}"


def hex_to_ass_bgr(color: str) -> str:
    """#RRGGBB -> BBGGRR (uppercase), the byte order ASS colours use."""
    value = color.lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    if len(value) != 6:
        value = DEFAULT_COLOR.lstrip("#")
    rr, gg, bb = value[0:2], value[2:4], value[4:6]
    return f"{bb}{gg}{rr}".upper()


def generate_srt(segments: list[CaptionSegment]) -> str:
    cues = [
        f"{i}\n{format_srt_time(seg.start_time)} --> {format_srt_time(seg.end_time)}\n{seg.text}\n"
        for i, seg in enumerate(segments, start=1)
    ]
    return "\n".join(cues)


def _ass_text(text: str) -> str:
    return text.replace("\r", "").replace("\n", "\\N").replace("{", "(").replace("}", ")")


def generate_ass(segments: list[CaptionSegment], style: CaptionStyle | None = None) -> str:
    style = style or CaptionStyle()
    font = style.font_family or DEFAULT_FONT
    size = FONT_SIZES.get(style.font_size, FONT_SIZES["medium"])
    primary = hex_to_ass_bgr(style.color or DEFAULT_COLOR)
    outline_colour = hex_to_ass_bgr(style.background_color or DEFAULT_BACKGROUND)
    alignment = ALIGNMENTS.get(style.position, ALIGNMENTS["bottom"])
    # Scales with the font: medium (22) gives outline 2, shadow 1
    outline = max(1, round(size / 11))
    shadow = max(1, round(size / 22))

    lines = [
        "[Script Info]",
        "Title: Generated Captions",
        "ScriptType: v4.00+",
        "WrapStyle: 0",
        "ScaledBorderAndShadow: yes",
        "YCbCr Matrix: TV.601",
        "PlayResX: 1920",
        "PlayResY: 1080",
        "",
        "[V4+ Styles]",
        ASS_STYLE_FORMAT,
        (
            f"Style: Default,{font},{size},&H00{primary},&H00{primary},&H00{outline_colour},"
            f"&H80{outline_colour},-1,0,0,0,100,100,0,0,1,{outline},{shadow},{alignment},50,50,30,1"
        ),
        "",
        "[Events]",
        ASS_EVENT_FORMAT,
    ]
    for seg in segments:
        lines.append(
            f"Dialogue: 0,{format_ass_time(seg.start_time)},{format_ass_time(seg.end_time)},"
            f"Default,,0,0,0,,{_ass_text(seg.text)}"
        )
    return "\n".join(lines) + "\n"
