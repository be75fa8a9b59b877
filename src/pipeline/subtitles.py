"""Render transcript segments as SRT or WebVTT subtitles."""

from __future__ import annotations

from collections.abc import Iterable

from src.pipeline.models import Segment


def format_timestamp(seconds: float, fmt: str = "srt") -> str:
    """``HH:MM:SS,mmm`` for SRT, ``HH:MM:SS.mmm`` for WebVTT."""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    separator = "." if fmt == "vtt" else ","
    return f"{hours:02d}:{minutes:02d}:{secs:02d}{separator}{ms:03d}"


def format_subtitles(segments: Iterable[Segment], fmt: str = "srt") -> str:
    if fmt not in ("srt", "vtt"):
        raise ValueError(f"Unsupported subtitle format: {fmt}")

    blocks: list[str] = []
    for index, segment in enumerate(segments, start=1):
        start = format_timestamp(segment.start, fmt)
        end = format_timestamp(segment.end, fmt)
        blocks.append(f"{index}\n{start} --> {end}\n{segment.text}\n")

    body = "\n".join(blocks)
    return f"WEBVTT\n\n{body}" if fmt == "vtt" else body
