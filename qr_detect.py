"""
QR detection: finder pattern search and symbol geometry.

Finder patterns are found by their 1:1:3:1:1 black/white/black/white/black
run ratio along bitmap rows, then confirmed along the column, the row again
(to refine the center) and the diagonal through that center.
"""

import logging
from itertools import combinations

import cv2
import numpy as np

from qr_errors import GeometryInvalid, NotFound
from qr_types import FinderPattern, SymbolGeometry

logger = logging.getLogger(__name__)

FINDER_RATIO = np.array([1, 1, 3, 1, 1])
# Max deviation of each run from its expected width, in modules
FINDER_RUN_TOLERANCE = 0.5
DIAGONAL_RUN_TOLERANCE = 0.75
# The three finders of one symbol must agree on module size within this fraction of their mean
MODULE_SIZE_TOLERANCE = 0.15
# Candidates confirmed by at least this many scan lines are preferred
CENTER_QUORUM = 2
# Angle at the top-left finder and max ratio of the two sides meeting there
MIN_CORNER_ANGLE, MAX_CORNER_ANGLE = 60, 120
MAX_SIDE_RATIO = 2.0
# Version 1 has 14 modules between finder centers; rotation shrinks the apparent count
MIN_FINDER_SPACING = 8

ALIGNMENT_SEARCH_RADIUS = 4  # modules around the estimated position
ALIGNMENT_MIN_SCORE = 0.8  # fraction of the 25 template modules that must match
ALIGNMENT_TEMPLATE = np.array([[1,1,1,1,1],[1,0,0,0,1],[1,0,1,0,1],[1,0,0,0,1],[1,1,1,1,1]], dtype=bool)

MIN_TRANSFORM_DETERMINANT = 1e-6


# ============================================================================
# FINDER PATTERNS
# ============================================================================

def _ratio_ok(counts, tolerance):
    """Run counts (..., 5) -> whether each row of counts looks like 1:1:3:1:1."""
    counts = np.asarray(counts, dtype=np.float64)
    total = counts.sum(axis=-1, keepdims=True)
    module = total / 7.0
    ok = np.abs(counts - FINDER_RATIO * module) < FINDER_RATIO * module * tolerance
    return np.all(ok, axis=-1) & (total[..., 0] >= 7)


def _counts_ok(counts, total, tolerance):
    """Scalar 1:1:3:1:1 check for one cross-section."""
    if total < 7:
        return False
    module = total / 7.0
    return all(abs(c - r * module) < r * module * tolerance for c, r in zip(counts, (1, 1, 3, 1, 1)))


def _runs(line):
    """Start, length and colour of every run in a 1-D bool array."""
    change = np.flatnonzero(line[1:] != line[:-1]) + 1
    starts = np.concatenate(([0], change))
    lengths = np.diff(np.concatenate((starts, [len(line)])))
    return starts, lengths, line[starts]


def _cross_check(line, center, tolerance, expected_total=None, limit=None):
    """Measure the five runs through `center` of a 1-D line.

    Returns (refined center, total run length) or None if the runs do not
    form a finder cross-section.
    """
    n = len(line)
    i = int(center)
    if i < 0 or i >= n or not line[i]:
        return None
    limit = limit or n
    counts = [0] * 5

    j = i
    while j >= 0 and line[j]:
        counts[2] += 1; j -= 1
    top = j + 1
    while j >= 0 and not line[j] and counts[1] <= limit:
        counts[1] += 1; j -= 1
    while j >= 0 and line[j] and counts[0] <= limit:
        counts[0] += 1; j -= 1

    j = i + 1
    while j < n and line[j]:
        counts[2] += 1; j += 1
    bottom = j
    while j < n and not line[j] and counts[3] <= limit:
        counts[3] += 1; j += 1
    while j < n and line[j] and counts[4] <= limit:
        counts[4] += 1; j += 1

    if min(counts) == 0 or max(counts) > limit:
        return None
    total = sum(counts)
    if expected_total is not None and 5 * abs(total - expected_total) >= 2 * expected_total:
        return None
    if not _counts_ok(counts, total, tolerance):
        return None
    return (top + bottom) / 2.0, total


def _diagonal_ok(bitmap, cx, cy):
    h, w = bitmap.shape
    x, y = int(cx), int(cy)
    back, fwd = min(x, y), min(w - 1 - x, h - 1 - y)
    t = np.arange(-back, fwd + 1)
    return _cross_check(bitmap[y + t, x + t], back + 0.5, DIAGONAL_RUN_TOLERANCE) is not None


def _confirm(bitmap, cx, y, total, center_run):
    """Cross-check a row hit; return (x, y, module_size) or None."""
    limit = 2 * center_run
    v = _cross_check(bitmap[:, int(cx)], y + 0.5, FINDER_RUN_TOLERANCE, total, limit)
    if v is None:
        return None
    cy, v_total = v
    h = _cross_check(bitmap[int(cy), :], cx, FINDER_RUN_TOLERANCE, total, limit)
    if h is None:
        return None
    cx, h_total = h
    if not _diagonal_ok(bitmap, cx, cy):
        return None
    return cx, cy, (h_total + v_total) / 14.0


def _merge(patterns, x, y, module):
    """Fold a confirmed center into a nearby candidate, or add a new one."""
    for i, p in enumerate(patterns):
        if abs(p.x - x) <= module and abs(p.y - y) <= module and \
                (abs(p.module_size - module) <= 1.0 or abs(p.module_size - module) <= 0.2 * module):
            n = p.count
            patterns[i] = FinderPattern((n * p.x + x) / (n + 1), (n * p.y + y) / (n + 1),
                                        (n * p.module_size + module) / (n + 1), n + 1)
            return
    patterns.append(FinderPattern(x, y, module))


def find_finder_patterns(bitmap, max_candidates=8):
    """
    Scan every row for finder cross-sections and cluster the confirmed centers.

    Returns up to max_candidates FinderPatterns, best supported first.
    """
    patterns = []
    for y in range(bitmap.shape[0]):
        starts, lengths, colours = _runs(bitmap[y])
        if len(lengths) < 5:
            continue
        windows = np.lib.stride_tricks.sliding_window_view(lengths, 5)
        hits = np.flatnonzero(colours[:len(windows)] & _ratio_ok(windows, FINDER_RUN_TOLERANCE))
        for i in hits:
            cx = starts[i + 2] + lengths[i + 2] / 2.0
            confirmed = _confirm(bitmap, cx, y, int(windows[i].sum()), int(lengths[i + 2]))
            if confirmed:
                _merge(patterns, *confirmed)

    patterns.sort(key=lambda p: -p.count)
    quorum = [p for p in patterns if p.count >= CENTER_QUORUM]
    if len(quorum) >= 3:
        patterns = quorum
    logger.debug("[DETECT] %d finder candidates", len(patterns))
    return patterns[:max_candidates]


def identify_corners(patterns):
    """Identify TL, TR, BL corners from 3 finder patterns."""
    max_d, diag = 0, (0, 1)
    for i in range(3):
        for j in range(i+1, 3):
            d = patterns[i].distance(patterns[j])
            if d > max_d: max_d, diag = d, (i, j)

    tl = patterns[3 - diag[0] - diag[1]]
    p1, p2 = patterns[diag[0]], patterns[diag[1]]
    v1 = (p1.x - tl.x, p1.y - tl.y)
    v2 = (p2.x - tl.x, p2.y - tl.y)
    # Image y grows downward, so a clockwise turn from TR to BL has positive cross product
    if v1[0] * v2[1] - v1[1] * v2[0] > 0:
        return tl, p1, p2
    return tl, p2, p1


def _triple_score(tl, tr, bl):
    """Lower is better; None if the three cannot be one symbol."""
    sizes = [tl.module_size, tr.module_size, bl.module_size]
    mean = sum(sizes) / 3
    if max(abs(s - mean) for s in sizes) > MODULE_SIZE_TOLERANCE * mean:
        return None
    len1, len2 = tl.distance(tr), tl.distance(bl)
    if min(len1, len2) < MIN_FINDER_SPACING * mean:
        return None
    if max(len1, len2) / min(len1, len2) > MAX_SIDE_RATIO:
        return None
    # Finders too far apart for their module size to fit in a version 40 symbol
    if round(((len1 + len2) / (2 * mean) + 7 - 17) / 4) > 40:
        return None
    cos = ((tr.x - tl.x) * (bl.x - tl.x) + (tr.y - tl.y) * (bl.y - tl.y)) / (len1 * len2)
    angle = np.degrees(np.arccos(np.clip(cos, -1, 1)))
    if not MIN_CORNER_ANGLE < angle < MAX_CORNER_ANGLE:
        return None
    spread = max(abs(s - mean) for s in sizes) / mean
    return abs(len1 - len2) / max(len1, len2) + abs(cos) + spread


def finder_triples(patterns):
    """
    All (tl, tr, bl) groupings of the candidates that form a plausible symbol, best first.

    Raises NotFound if there is none.
    """
    if len(patterns) < 3:
        raise NotFound(f"Found {len(patterns)} finder patterns, need 3")
    scored = []
    for combo in combinations(patterns, 3):
        tl, tr, bl = identify_corners(list(combo))
        score = _triple_score(tl, tr, bl)
        if score is not None:
            scored.append((score, (tl, tr, bl)))
    if not scored:
        raise NotFound(f"No consistent finder triple among {len(patterns)} candidates")
    scored.sort(key=lambda s: s[0])
    return [triple for _, triple in scored]


# ============================================================================
# GEOMETRY
# ============================================================================

def _edge_distance(bitmap, x, y, ux, uy, max_steps):
    """Pixels walked from a finder center along (ux, uy) until the outer black ring ends."""
    h, w = bitmap.shape
    t = np.arange(int(max_steps))
    xs = np.floor(x + ux * t).astype(int)
    ys = np.floor(y + uy * t).astype(int)
    inside = (xs >= 0) & (xs < w) & (ys >= 0) & (ys < h)
    if not inside.all():
        stop = np.argmin(inside)
        xs, ys = xs[:stop], ys[:stop]
    vals = bitmap[ys, xs]
    if len(vals) == 0 or not vals[0]:
        return None
    changes = np.flatnonzero(vals[1:] != vals[:-1]) + 1
    # black center -> white ring -> black ring -> outside; the edge lies half a step before the first outside sample
    return changes[2] - 0.5 if len(changes) >= 3 else None


def _module_size_along(bitmap, a, b):
    """Module size measured through finder `a` on the line towards `b` (7 modules end to end)."""
    d = a.distance(b)
    if d == 0:
        return None
    ux, uy = (b.x - a.x) / d, (b.y - a.y) / d
    reach = 8 * a.module_size
    fwd = _edge_distance(bitmap, a.x, a.y, ux, uy, reach)
    back = _edge_distance(bitmap, a.x, a.y, -ux, -uy, reach)
    if fwd is None or back is None:
        return None
    return (fwd + back) / 7.0


def calculate_module_size(bitmap, tl, tr, bl):
    estimates = [m for m in (_module_size_along(bitmap, tl, tr), _module_size_along(bitmap, tr, tl),
                             _module_size_along(bitmap, tl, bl), _module_size_along(bitmap, bl, tl))
                 if m]
    if not estimates:
        return (tl.module_size + tr.module_size + bl.module_size) / 3
    return sum(estimates) / len(estimates)


def estimate_version(tl, tr, bl, module_size):
    """Version from the finder spacing; raises GeometryInvalid if outside 1-40."""
    modules = (tl.distance(tr) + tl.distance(bl)) / (2 * module_size) + 7
    version = int(round((modules - 17) / 4))
    if not 1 <= version <= 40:
        raise GeometryInvalid(f"Estimated version {version} (from {modules:.1f} modules) out of range")
    return version


def find_alignment(bitmap, tl, tr, bl, version):
    """Center of the bottom-right alignment pattern, or None if it cannot be seen."""
    h, w = bitmap.shape
    between = version * 4 + 17 - 7
    ux, uy = (tr.x - tl.x) / between, (tr.y - tl.y) / between
    vx, vy = (bl.x - tl.x) / between, (bl.y - tl.y) / between
    module = (np.hypot(ux, uy) + np.hypot(vx, vy)) / 2

    # The alignment center sits 3 modules in from the bottom-right "finder" position
    corr = 1.0 - 3.0 / between
    ex = tl.x + corr * (tr.x - tl.x + bl.x - tl.x)
    ey = tl.y + corr * (tr.y - tl.y + bl.y - tl.y)

    radius = ALIGNMENT_SEARCH_RADIUS * module
    offs = np.arange(-radius, radius + 1.0)
    cx, cy = np.meshgrid(ex + offs, ey + offs)
    cx, cy = cx.ravel(), cy.ravel()

    j, i = np.mgrid[-2:3, -2:3]
    px = cx[:, None] + (i.ravel() * ux + j.ravel() * vx)[None, :]
    py = cy[:, None] + (i.ravel() * uy + j.ravel() * vy)[None, :]
    xs, ys = np.floor(px).astype(int), np.floor(py).astype(int)
    inside = (xs >= 0) & (xs < w) & (ys >= 0) & (ys < h)
    vals = bitmap[np.clip(ys, 0, h - 1), np.clip(xs, 0, w - 1)] & inside

    score = (vals == ALIGNMENT_TEMPLATE.ravel()[None, :]).mean(axis=1)
    best = score.max()
    if best < ALIGNMENT_MIN_SCORE:
        logger.debug("[DETECT] No alignment pattern near (%.1f, %.1f), best score %.2f", ex, ey, best)
        return None
    winners = score >= best - 1e-9
    return float(cx[winners].mean()), float(cy[winners].mean())


def perspective_transform(module_pts, image_pts):
    """3x3 homography mapping module coordinates to pixel coordinates."""
    try:
        H = cv2.getPerspectiveTransform(np.array(module_pts, dtype=np.float32),
                                        np.array(image_pts, dtype=np.float32))
    except cv2.error as e:
        raise GeometryInvalid(f"Cannot build perspective transform: {e}") from e
    if H is None or not np.all(np.isfinite(H)) or abs(np.linalg.det(H)) < MIN_TRANSFORM_DETERMINANT:
        raise GeometryInvalid("Degenerate perspective transform")
    return H


def solve_geometry(bitmap, tl, tr, bl, version=None):
    """Finder triple -> SymbolGeometry, estimating the version unless one is given."""
    module_size = calculate_module_size(bitmap, tl, tr, bl)
    if version is None:
        version = estimate_version(tl, tr, bl, module_size)
    elif not 1 <= version <= 40:
        raise GeometryInvalid(f"Version {version} out of range")
    dim = version * 4 + 17

    alignment = find_alignment(bitmap, tl, tr, bl, version) if version >= 2 else None
    if alignment is not None:
        br, br_module = alignment, dim - 6.5
    else:
        br, br_module = (tr.x - tl.x + bl.x, tr.y - tl.y + bl.y), dim - 3.5

    H = perspective_transform(
        [[3.5, 3.5], [dim - 3.5, 3.5], [3.5, dim - 3.5], [br_module, br_module]],
        [[tl.x, tl.y], [tr.x, tr.y], [bl.x, bl.y], list(br)])
    return SymbolGeometry(version, H, module_size, tl, tr, bl, alignment)
