"""
Track numbering, CSV export and legacy segment encoding.

Identifiers are assigned the same way the run script assigns them:
anterograde tracks first, then retrograde, each list in engine order, one
sequence starting at 1. Under the bidirectional model every track shares a
single sequence.
"""

import csv

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from kymobutler.constants import TRACKS_CSV_HEADER, Direction
from kymobutler.models.outcome import Track

RawTrack = Sequence[Sequence[Any]]


def parse_points(raw: Any) -> tuple[tuple[float, float], ...]:
    """
    Convert one engine track (a list of [t, x] pairs) into points.

    Raises:
        ValueError: If the track is not a list of numeric pairs
    """
    if not isinstance(raw, list):
        raise ValueError(f"Track must be a list of samples, got {type(raw).__name__}")

    points = []
    for sample in raw:
        if not isinstance(sample, list) or len(sample) < 2:
            raise ValueError(f"Track sample must be a [t, x] pair, got {sample!r}")
        t, x = sample[0], sample[1]
        if isinstance(t, bool) or isinstance(x, bool):
            raise ValueError(f"Track sample must be numeric, got {sample!r}")
        if not isinstance(t, int | float) or not isinstance(x, int | float):
            raise ValueError(f"Track sample must be numeric, got {sample!r}")
        points.append((t, x))
    return tuple(points)


def number_tracks(
    anterograde: Iterable[RawTrack] = (),
    retrograde: Iterable[RawTrack] = (),
    bidirectional: Iterable[RawTrack] = (),
) -> list[Track]:
    """
    Assign sequential identifiers to engine track lists.

    Args:
        anterograde: Anterograde tracks (unidirectional model)
        retrograde: Retrograde tracks (unidirectional model)
        bidirectional: Tracks from the bidirectional model

    Returns:
        Tracks numbered from 1, anterograde before retrograde before
        bidirectional

    Raises:
        ValueError: If any track is malformed
    """
    tracks: list[Track] = []
    next_id = 1
    for direction, raw_tracks in (
        (Direction.ANTEROGRADE, anterograde),
        (Direction.RETROGRADE, retrograde),
        (Direction.BIDIRECTIONAL, bidirectional),
    ):
        for raw in raw_tracks:
            tracks.append(
                Track(track_id=next_id, direction=direction, points=parse_points(raw))
            )
            next_id += 1
    return tracks


def _plain(value: float) -> int | float:
    """Drop a redundant .0 so integral samples print as integers."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def track_rows(
    tracks: Iterable[Track], time_size: float = 1.0, space_size: float = 1.0
) -> list[list[Any]]:
    """One row per (track, sample) in the tracks CSV column order."""
    rows = []
    for track in tracks:
        for t, x in track.points:
            rows.append(
                [
                    track.track_id,
                    _plain(t),
                    _plain(x),
                    track.direction.value,
                    _plain(t * time_size),
                    _plain(x * space_size),
                ]
            )
    return rows


def write_tracks_csv(
    tracks: Iterable[Track],
    output_path: Path,
    time_size: float = 1.0,
    space_size: float = 1.0,
) -> None:
    """
    Write tracks in the long CSV layout (one row per sample).

    Args:
        tracks: Numbered tracks
        output_path: Destination CSV file
        time_size: Physical size of one time step (t_phys = t * time_size)
        space_size: Physical size of one pixel (x_phys = x * space_size)
    """
    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(TRACKS_CSV_HEADER)
        writer.writerows(track_rows(tracks, time_size, space_size))


def encode_tracks(tracks: Iterable[Track]) -> str:
    """
    Encode tracks as a nested-brace segment for the legacy upload field.

    Example:
        >>> encode_tracks([Track(1, Direction.ANTEROGRADE, ((0, 1), (1, 2)))])
        '{{{0,1},{1,2}}}'
    """
    encoded = []
    for track in tracks:
        samples = ",".join(f"{{{_plain(t)},{_plain(x)}}}" for t, x in track.points)
        encoded.append(f"{{{samples}}}")
    return "{" + ",".join(encoded) + "}"
