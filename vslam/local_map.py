"""Selection of the local map (keyframes and map points) tracked against a frame."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

_BEST_COVISIBLES = 10
_DEFAULT_MAX_KEYFRAMES = 80


@dataclass(eq=False)
class KeyFrameNode:
    """A keyframe as seen by local-map selection.

    ``covisibles`` is ordered from the strongest covisibility link down;
    ``points`` holds the keyframe's map-point matches, with ``None`` for
    unmatched keypoints.
    """

    id: int
    bad: bool = False
    covisibles: List["KeyFrameNode"] = field(default_factory=list, repr=False)
    children: List["KeyFrameNode"] = field(default_factory=list, repr=False)
    parent: Optional["KeyFrameNode"] = field(default=None, repr=False)
    points: List[Optional["PointNode"]] = field(default_factory=list, repr=False)
    track_reference_for_frame: int = -1


@dataclass(eq=False)
class PointNode:
    """A map point and the keyframes that observe it."""

    id: int
    bad: bool = False
    observations: List[KeyFrameNode] = field(default_factory=list, repr=False)
    track_reference_for_frame: int = -1


@dataclass(frozen=True, eq=False)
class LocalMap:
    """Local keyframes and points for a frame.

    ``reference`` is the keyframe sharing most points with the frame, or
    ``None`` when no keyframe observes them. ``matches`` is the frame's list of
    matched points with bad points replaced by ``None``.
    """

    keyframes: Tuple[KeyFrameNode, ...]
    points: Tuple[PointNode, ...]
    reference: Optional[KeyFrameNode]
    matches: Tuple[Optional[PointNode], ...]


def _first_unvisited(candidates: Iterable[KeyFrameNode], frame_id) -> Optional[KeyFrameNode]:
    return next(
        (kf for kf in candidates if not kf.bad and kf.track_reference_for_frame != frame_id),
        None,
    )


def update_local_keyframes(points, frame_id, max_keyframes=_DEFAULT_MAX_KEYFRAMES):
    """Collect the keyframes around a frame's matched points.

    Every keyframe observing a good matched point is taken, then for each one
    at most one new strong covisible, one new child and its parent, until the
    list grows past ``max_keyframes``. Adding a parent ends the expansion.
    Returns ``(keyframes, reference)``; keyframes taken are marked with
    ``frame_id``.
    """
    counter: Counter = Counter()
    for point in points:
        if point is None or point.bad:
            continue
        counter.update(point.observations)

    if not counter:
        return [], None

    best_count = 0
    reference: Optional[KeyFrameNode] = None
    local: List[KeyFrameNode] = []

    for keyframe in sorted(counter, key=lambda kf: kf.id):
        if keyframe.bad:
            continue
        if counter[keyframe] > best_count:
            best_count = counter[keyframe]
            reference = keyframe
        local.append(keyframe)
        keyframe.track_reference_for_frame = frame_id

    # The list grows while it is walked, so new keyframes are expanded in turn.
    for keyframe in local:
        if len(local) > max_keyframes:
            break

        neighbour = _first_unvisited(keyframe.covisibles[:_BEST_COVISIBLES], frame_id)
        if neighbour is not None:
            local.append(neighbour)
            neighbour.track_reference_for_frame = frame_id

        child = _first_unvisited(sorted(keyframe.children, key=lambda kf: kf.id), frame_id)
        if child is not None:
            local.append(child)
            child.track_reference_for_frame = frame_id

        parent = keyframe.parent
        if parent is not None and parent.track_reference_for_frame != frame_id:
            local.append(parent)
            parent.track_reference_for_frame = frame_id
            break

    return local, reference


def update_local_points(keyframes, frame_id) -> List[PointNode]:
    """Good map points of the keyframes, each once, marked with ``frame_id``."""
    local: List[PointNode] = []
    for keyframe in keyframes:
        for point in keyframe.points:
            if point is None or point.track_reference_for_frame == frame_id:
                continue
            if not point.bad:
                local.append(point)
                point.track_reference_for_frame = frame_id
    return local


def build_local_map(points: Sequence[Optional[PointNode]], frame_id) -> LocalMap:
    """Select local keyframes and points for a frame with the given matches."""
    matches = tuple(None if point is None or point.bad else point for point in points)
    keyframes, reference = update_local_keyframes(matches, frame_id)
    local_points = update_local_points(keyframes, frame_id)
    return LocalMap(
        keyframes=tuple(keyframes),
        points=tuple(local_points),
        reference=reference,
        matches=matches,
    )