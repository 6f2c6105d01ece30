"""QR decode debug visualization - saves intermediate results to disk."""

import os

import cv2
import numpy as np

from qr_matrix import (ALIGNMENT, DARK_MODULE, FINDER, FORMAT_INFO, SEPARATOR, TIMING,
                       VERSION_INFO, module_type_map, zigzag_order)

COLORS = {
    FINDER: (0, 0, 200),         # red
    SEPARATOR: (0, 140, 255),    # orange
    TIMING: (0, 200, 200),       # yellow
    ALIGNMENT: (200, 100, 0),    # blue
    FORMAT_INFO: (200, 0, 200),  # magenta
    VERSION_INFO: (200, 200, 0), # cyan
    DARK_MODULE: (100, 100, 100),
}


def _save_img(debug_dir, name, data):
    path = os.path.join(debug_dir, name)
    if data.dtype == bool:
        data = np.where(data, 0, 255).astype(np.uint8)
    cv2.imwrite(path, data)


def _draw_colored_matrix(matrix, version, scale=20):
    """Draw the sampled grid with each functional region in its own colour, plus the zigzag path."""
    size = matrix.shape[0]
    tmap = module_type_map(version)

    vis = np.zeros((size * scale, size * scale, 3), dtype=np.uint8)
    for r in range(size):
        for c in range(size):
            y0, y1 = r * scale, (r + 1) * scale
            x0, x1 = c * scale, (c + 1) * scale
            color = COLORS.get(int(tmap[r, c]))
            if color is None:
                vis[y0:y1, x0:x1] = 0 if matrix[r, c] else 255
            elif matrix[r, c]:
                vis[y0:y1, x0:x1] = color
            else:
                vis[y0:y1, x0:x1] = tuple(min(255, int(v * 0.4 + 255 * 0.6)) for v in color)
            vis[y0, x0:x1] = (60, 60, 60)
            vis[y0:y1, x0] = (60, 60, 60)

    half = scale // 2
    rows, cols = zigzag_order(version)
    pts = np.stack([cols * scale + half, rows * scale + half], axis=1).astype(np.int32)
    for i in range(len(pts) - 1):
        t = i / max(len(pts) - 1, 1)
        cv2.line(vis, tuple(map(int, pts[i])), tuple(map(int, pts[i + 1])),
                 (0, int(200 * (1 - t)), int(200 * t)), 2, cv2.LINE_AA)
    if len(pts):
        cv2.circle(vis, tuple(map(int, pts[0])), 4, (0, 255, 0), -1)
        cv2.circle(vis, tuple(map(int, pts[-1])), 4, (0, 0, 255), -1)
    return vis


def _draw_geometry(bitmap, geometry):
    vis = cv2.cvtColor(np.where(bitmap, 0, 255).astype(np.uint8), cv2.COLOR_GRAY2BGR)
    for label, p in (('TL', geometry.top_left), ('TR', geometry.top_right), ('BL', geometry.bottom_left)):
        cx, cy = int(p.x), int(p.y)
        cv2.circle(vis, (cx, cy), 5, (0, 0, 255), -1)
        cv2.putText(vis, label, (cx + 8, cy - 8), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 255), 2)
    if geometry.alignment is not None:
        ax, ay = geometry.alignment
        cv2.circle(vis, (int(ax), int(ay)), 5, (255, 0, 0), -1)
    dim = geometry.dimension
    outline = np.array([[[0, 0]], [[dim, 0]], [[dim, dim]], [[0, dim]]], dtype=np.float32)
    pts = cv2.perspectiveTransform(outline, geometry.transform).reshape(4, 2).astype(int)
    for i in range(4):
        cv2.line(vis, tuple(map(int, pts[i])), tuple(map(int, pts[(i+1) % 4])), (0, 255, 255), 2)
    return vis


def save_debug_all(debug_dir, trace):
    """Save whatever stages `trace` recorded to debug_dir."""
    if not debug_dir:
        return
    os.makedirs(debug_dir, exist_ok=True)
    bitmap = trace.get('bitmap')
    if bitmap is not None:
        _save_img(debug_dir, "1_binary.png", bitmap)
        if trace.get('geometry') is not None:
            _save_img(debug_dir, "2_detected.png", _draw_geometry(bitmap, trace['geometry']))

    geometry = trace.get('geometry')
    if trace.get('grid') is not None and geometry is not None:
        _save_img(debug_dir, "3_matrix.png", _draw_colored_matrix(trace['grid'], geometry.version))
    if trace.get('unmasked') is not None:
        m = trace['unmasked']
        _save_img(debug_dir, "4_unmasked.png",
                  cv2.resize(((1 - m) * 255).astype(np.uint8), (m.shape[1] * 10, m.shape[0] * 10),
                             interpolation=cv2.INTER_NEAREST))

    fmt = trace.get('format')
    lines = []
    if geometry is not None:
        lines.append(f"Version: {geometry.version}\nSize: {geometry.dimension}x{geometry.dimension}\n"
                     f"Module size: {geometry.module_size:.2f}px\nAlignment: {geometry.alignment}")
    if fmt is not None:
        lines.append(f"EC level: {fmt.ec_level}\nMask: {fmt.mask}")
    if trace.get('codewords') is not None:
        lines.append(f"Codewords: {len(trace['codewords'])}")
    if trace.get('error') is not None:
        lines.append(f"Error: {type(trace['error']).__name__}: {trace['error']}")
    if trace.get('text') is not None:
        lines.append(f"\nResult:\n{trace['text']}")
    with open(os.path.join(debug_dir, "5_info.txt"), 'w') as f:
        f.write('\n'.join(lines) + '\n')
